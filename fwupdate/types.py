"""Shared type definitions for fwupdate.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path


class ExitStatus(IntEnum):
    """Process exit status, one per error category."""

    SUCCESS = 0
    TARGET_FAILED = 1
    CONFIGURATION_ERROR = 2
    MANIFEST_ERROR = 3
    HASH_MISMATCH = 4
    DEVICE_ERROR = 5


class RunMode(str, Enum):
    """What a session does with its targets."""

    INSTALL = "install"
    VERIFY = "verify"


class Outcome(str, Enum):
    """Result of one verify or install operation on one target."""

    VERIFIED_OK = "verified-ok"
    VERIFIED_FAILED = "verified-failed"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        """Whether this outcome makes the overall run fail."""
        return self in (Outcome.VERIFIED_FAILED, Outcome.FAILED)


class TargetKind(str, Enum):
    """Kind of physical storage a target lives on."""

    BOOT_PARTITION = "boot-partition"
    FLASH = "flash"
    IO_CONTROLLER = "io-controller"


class TargetName(str, Enum):
    """Targets known to the updater, in canonical order."""

    BOOT1 = "boot1"
    BOOT2 = "boot2"
    FLASH1 = "flash1"
    FLASH2 = "flash2"
    IOC_BOOT = "ioc-boot"
    IOC_MAIN = "ioc-main"

    @property
    def kind(self) -> TargetKind:
        """Kind of storage backing this target."""
        if self in (TargetName.BOOT1, TargetName.BOOT2):
            return TargetKind.BOOT_PARTITION
        if self in (TargetName.FLASH1, TargetName.FLASH2):
            return TargetKind.FLASH
        return TargetKind.IO_CONTROLLER


class IOControllerSection(str, Enum):
    """Firmware sections of the IO controller."""

    MAIN = "main"
    BOOT = "boot"


@dataclass(frozen=True)
class ResolvedArtifact:
    """A manifest section resolved to an extracted file.

    Attributes:
        section: Manifest section name.
        path: Absolute path to the extracted file.
        expected_hash: Hash declared by the manifest (lowercase hex).
    """

    section: str
    path: Path
    expected_hash: str


@dataclass(frozen=True)
class TargetResult:
    """Outcome of processing one target.

    Attributes:
        target: Target name.
        kind: Storage kind of the target.
        section: Manifest section installed or verified.
        outcome: What happened.
        duration: Wall time spent on the target in seconds.
        bricking_window: Seconds the target spent without a consistent
            image, if an install replaced its content.
        message: Optional human-readable detail.
    """

    target: TargetName
    kind: TargetKind
    section: str
    outcome: Outcome
    duration: float = 0.0
    bricking_window: float | None = None
    message: str | None = None


__all__ = [
    "ExitStatus",
    "IOControllerSection",
    "Outcome",
    "ResolvedArtifact",
    "RunMode",
    "TargetKind",
    "TargetName",
    "TargetResult",
]
