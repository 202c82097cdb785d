"""Aggregated result of one update or verify session."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fwupdate.errors import FwUpdateError
from fwupdate.types import (
    ExitStatus,
    Outcome,
    RunMode,
    TargetKind,
    TargetName,
    TargetResult,
)

# Bucket name for each outcome in reports
OUTCOME_BUCKETS = {
    Outcome.UPDATED: "updated",
    Outcome.SKIPPED: "skipped",
    Outcome.FAILED: "failed",
    Outcome.VERIFIED_OK: "verified",
    Outcome.VERIFIED_FAILED: "failed",
}


@dataclass
class SessionReport:
    """Ordered per-target results plus the overall verdict.

    Attributes:
        mode: Whether targets were installed or verified.
        package_path: Firmware package used.
        results: Target results in processing order (append-only).
        planned: Target order that would run, for dry runs.
        dry_run: Whether device work was skipped.
        fatal_error: Error that aborted the run, if any.
        started_at: When the run started.
        finished_at: When the run finished.
    """

    mode: RunMode
    package_path: str
    results: list[TargetResult] = field(default_factory=list)
    planned: list[TargetName] = field(default_factory=list)
    dry_run: bool = False
    fatal_error: FwUpdateError | None = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    def record(self, result: TargetResult) -> None:
        """Append a target result."""
        self.results.append(result)

    def buckets(self, *, io_controller: bool) -> dict[str, list[str]]:
        """Group target names by outcome bucket.

        Main firmware targets (boot partitions, flash) and IO controller
        targets are reported separately.
        """
        grouped: dict[str, list[str]] = {
            name: []
            for name in (
                ("verified", "failed")
                if self.mode is RunMode.VERIFY
                else ("updated", "skipped", "failed")
            )
        }
        for result in self.results:
            if (result.kind is TargetKind.IO_CONTROLLER) != io_controller:
                continue
            bucket = OUTCOME_BUCKETS[result.outcome]
            grouped.setdefault(bucket, []).append(result.target.value)
        return grouped

    @property
    def failed(self) -> list[TargetResult]:
        """Results that make the run fail."""
        return [r for r in self.results if r.outcome.is_failure]

    @property
    def success(self) -> bool:
        """True iff nothing aborted the run and no target failed."""
        return self.fatal_error is None and not self.failed

    @property
    def exit_status(self) -> ExitStatus:
        """Process exit status for this report."""
        if self.fatal_error is not None:
            return self.fatal_error.exit_status
        if self.failed:
            return ExitStatus.TARGET_FAILED
        return ExitStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "mode": self.mode.value,
            "package_path": self.package_path,
            "dry_run": self.dry_run,
            "success": self.success,
            "exit_status": int(self.exit_status),
            "error_code": self.fatal_error.error_code if self.fatal_error else None,
            "error_message": self.fatal_error.message if self.fatal_error else None,
            "planned": [t.value for t in self.planned],
            "main": self.buckets(io_controller=False),
            "io_controller": self.buckets(io_controller=True),
            "results": [
                {
                    "target": r.target.value,
                    "kind": r.kind.value,
                    "section": r.section,
                    "outcome": r.outcome.value,
                    "duration": round(r.duration, 3),
                    "bricking_window": (
                        round(r.bricking_window, 3)
                        if r.bricking_window is not None
                        else None
                    ),
                    "message": r.message,
                }
                for r in self.results
            ],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = ["OUTCOME_BUCKETS", "SessionReport"]
