"""Session orchestration for firmware update and verify runs.

This module provides the top-level operations:
- run_session: update or verify the requested targets from a package
- select_targets: validate the requested target names
- get_update_runs: query run history

Run flow::

    identity check -> workspace -> extract -> manifest -> compatibility
    -> resolve sections -> verify every artifact hash -> targets -> report

Targets are processed strictly one at a time. Device, manifest and
package hash errors abort the run; per-target mismatches are recorded
and processing continues. The workspace is released on every path.
"""

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from fwupdate.config import Settings, get_settings
from fwupdate.errors import ConfigurationError, FwUpdateError
from fwupdate.manifest import load_manifest, resolve_sections, validate_manifest
from fwupdate.package import Workspace, extract_package
from fwupdate.session.models import TargetRecord, UpdateRun
from fwupdate.session.report import SessionReport
from fwupdate.targets import (
    BootPartitionTarget,
    DeviceTarget,
    FlashDeviceTarget,
    IOControllerTarget,
    plan_boot_install_order,
    verify_artifact,
)
from fwupdate.types import (
    IOControllerSection,
    ResolvedArtifact,
    RunMode,
    TargetName,
    TargetResult,
)

logger = logging.getLogger(__name__)

# Install order after the boot partitions
_TRAILING_INSTALL_ORDER = [
    TargetName.FLASH2,
    TargetName.FLASH1,
    TargetName.IOC_BOOT,
    TargetName.IOC_MAIN,
]

_IOC_SECTIONS = {
    TargetName.IOC_BOOT: IOControllerSection.BOOT,
    TargetName.IOC_MAIN: IOControllerSection.MAIN,
}


def select_targets(
    settings: Settings, requested: Iterable[str | TargetName] | None = None
) -> list[TargetName]:
    """Validate requested target names against the configuration.

    Args:
        settings: Application settings.
        requested: Target names; None selects every configured target.

    Returns:
        Requested targets in canonical order, without duplicates.

    Raises:
        ConfigurationError: Unknown or unconfigured target, or nothing to do.
    """
    configured = settings.configured_targets()
    if requested is None:
        selected = configured
    else:
        names: set[TargetName] = set()
        for item in requested:
            try:
                name = TargetName(item)
            except ValueError:
                valid = ", ".join(t.value for t in TargetName)
                raise ConfigurationError(
                    f"Unknown target {item!r} (valid: {valid})",
                    error_code="UNKNOWN_TARGET",
                ) from None
            if name not in configured:
                raise ConfigurationError(
                    f"Target {name.value} has no device configured",
                    error_code="TARGET_NOT_CONFIGURED",
                )
            names.add(name)
        selected = [t for t in TargetName if t in names]

    if not selected:
        raise ConfigurationError("No targets selected", error_code="NO_TARGETS")
    return selected


def build_target(
    name: TargetName, settings: Settings, mount_point: Path
) -> DeviceTarget:
    """Create the device target for a target name."""
    device_path = settings.device_for(name)
    if not device_path:
        raise ConfigurationError(
            f"Target {name.value} has no device configured",
            error_code="TARGET_NOT_CONFIGURED",
        )

    if name in (TargetName.BOOT1, TargetName.BOOT2):
        return BootPartitionTarget(
            name,
            device_path,
            mount_point,
            checksum_file_name=settings.checksum_file_name,
            image_name=settings.boot_image_name,
            mount_options=settings.mount_options,
            fsck_command=settings.fsck_command,
            fsck_max_ok_status=settings.fsck_max_ok_status,
            command_timeout=settings.command_timeout,
        )
    if name in (TargetName.FLASH1, TargetName.FLASH2):
        return FlashDeviceTarget(
            name,
            device_path,
            header_size=settings.flash_header_size,
            erase_block_size=settings.flash_erase_block_size,
            erase_command=settings.flash_erase_command,
        )
    return IOControllerTarget(
        name,
        device_path,
        _IOC_SECTIONS[name],
        tool=settings.ioc_tool,
        verify_timeout=settings.ioc_verify_timeout,
    )


def default_install_order(requested: Iterable[TargetName]) -> list[TargetName]:
    """Install order assuming the first boot partition passes its self-test."""
    wanted = set(requested)
    order = [TargetName.BOOT2, TargetName.BOOT1, *_TRAILING_INSTALL_ORDER]
    return [t for t in order if t in wanted]


def install_order(
    requested: list[TargetName], targets: dict[TargetName, DeviceTarget]
) -> list[TargetName]:
    """Decide the install order, self-testing boot1 when both partitions run."""
    order: list[TargetName] = []

    boot1 = targets.get(TargetName.BOOT1)
    boot2 = targets.get(TargetName.BOOT2)
    if isinstance(boot1, BootPartitionTarget) and isinstance(
        boot2, BootPartitionTarget
    ):
        order.extend(t.name for t in plan_boot_install_order(boot1, boot2))
    elif boot2 is not None:
        order.append(TargetName.BOOT2)
    elif boot1 is not None:
        order.append(TargetName.BOOT1)

    order.extend(t for t in _TRAILING_INSTALL_ORDER if t in requested)
    return order


def _process_target(
    report: SessionReport,
    target: DeviceTarget,
    artifact: ResolvedArtifact,
    mode: RunMode,
) -> None:
    logger.info(
        "%s %s (%s) from section %s",
        "Installing" if mode is RunMode.INSTALL else "Verifying",
        target.name.value,
        target.device_path,
        artifact.section,
    )
    started = time.monotonic()
    if mode is RunMode.INSTALL:
        step = target.install(artifact)
    else:
        step = target.verify(artifact)

    result = TargetResult(
        target=target.name,
        kind=target.kind,
        section=artifact.section,
        outcome=step.outcome,
        duration=time.monotonic() - started,
        bricking_window=step.bricking_window,
        message=step.message,
    )
    report.record(result)

    log = logger.warning if result.outcome.is_failure else logger.info
    log("%s: %s", target.name.value, result.outcome.value)


def _run(
    report: SessionReport,
    workspace: Workspace,
    package_path: Path,
    settings: Settings,
    requested: list[TargetName],
    model: str,
    generation: str,
) -> None:
    extract_package(package_path, workspace.extract_dir)
    manifest = load_manifest(workspace.extract_dir / settings.manifest_name)
    validate_manifest(manifest, model, generation)

    sections = {name: settings.section_for(name) for name in requested}
    artifacts = resolve_sections(
        manifest, sections.values(), workspace.extract_dir
    )
    # A corrupt package must never reach a device.
    for artifact in artifacts.values():
        verify_artifact(artifact)

    if report.dry_run:
        report.planned = (
            default_install_order(requested)
            if report.mode is RunMode.INSTALL
            else list(requested)
        )
        logger.info(
            "Dry-run: package verified, would process %s",
            [t.value for t in report.planned],
        )
        return

    targets = {
        name: build_target(name, settings, workspace.mount_point)
        for name in requested
    }

    if report.mode is RunMode.INSTALL:
        sequence = install_order(requested, targets)
    else:
        sequence = list(requested)
    logger.info("Processing targets: %s", [t.value for t in sequence])

    for name in sequence:
        _process_target(report, targets[name], artifacts[sections[name]], report.mode)


def run_session(
    package_path: str | Path,
    *,
    mode: RunMode = RunMode.INSTALL,
    settings: Settings | None = None,
    targets: Iterable[str | TargetName] | None = None,
    dry_run: bool = False,
    db_session: Session | None = None,
) -> SessionReport:
    """Update or verify device targets from a firmware package.

    Args:
        package_path: Path to the firmware package tarball.
        mode: Install or verify.
        settings: Application settings (optional).
        targets: Target names to process; None means all configured.
        dry_run: Verify the package and plan, but do not touch devices.
        db_session: Database session for run history (optional).

    Returns:
        SessionReport. Errors that abort the run are recorded in
        ``fatal_error`` rather than raised.
    """
    if settings is None:
        settings = get_settings()

    package_path = Path(package_path)
    report = SessionReport(mode=mode, package_path=str(package_path), dry_run=dry_run)
    logger.info(
        "%s requested: package=%s, dry_run=%s",
        mode.value.capitalize(),
        package_path.name,
        dry_run,
    )

    try:
        model, generation = settings.require_identity()
        requested = select_targets(settings, targets)
        with Workspace(
            settings.tmp_dir, command_timeout=settings.command_timeout
        ) as workspace:
            _run(
                report,
                workspace,
                package_path,
                settings,
                requested,
                model,
                generation,
            )
    except FwUpdateError as e:
        logger.error("Run aborted (%s): %s", e.error_code, e.message)
        report.fatal_error = e
    finally:
        report.finished_at = datetime.now()

    logger.info(
        "%s finished: success=%s, exit_status=%d",
        mode.value.capitalize(),
        report.success,
        report.exit_status,
    )

    if db_session is not None:
        record_run(db_session, report, settings)

    return report


def record_run(
    session: Session, report: SessionReport, settings: Settings
) -> UpdateRun:
    """Persist a report as an UpdateRun with its TargetRecords."""
    run = UpdateRun(
        mode=report.mode.value,
        package_path=report.package_path,
        model=settings.model,
        generation=settings.generation,
        started_at=report.started_at,
        finished_at=report.finished_at,
        success=report.success,
        exit_status=int(report.exit_status),
        error_code=report.fatal_error.error_code if report.fatal_error else None,
        error_message=report.fatal_error.message if report.fatal_error else None,
    )
    for position, result in enumerate(report.results):
        run.targets.append(
            TargetRecord(
                position=position,
                target=result.target.value,
                section=result.section,
                outcome=result.outcome.value,
                duration=result.duration,
                bricking_window=result.bricking_window,
                message=result.message,
            )
        )
    session.add(run)
    session.flush()
    logger.debug("Recorded UpdateRun id=%d", run.id)
    return run


def get_update_runs(
    session: Session,
    *,
    mode: RunMode | None = None,
    limit: int = 20,
) -> list[UpdateRun]:
    """Query run history, newest first.

    Args:
        session: Database session.
        mode: Filter by run mode.
        limit: Maximum number of runs to return.

    Returns:
        List of UpdateRun objects.
    """
    stmt = select(UpdateRun)
    if mode is not None:
        stmt = stmt.where(UpdateRun.mode == mode.value)
    stmt = stmt.order_by(UpdateRun.started_at.desc(), UpdateRun.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "build_target",
    "default_install_order",
    "get_update_runs",
    "install_order",
    "record_run",
    "run_session",
    "select_targets",
]
