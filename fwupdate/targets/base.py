"""Common interface for firmware targets.

The session orchestrator only depends on DeviceTarget: every kind of
storage implements ``verify`` and ``install`` and reports an Outcome.
Targets are stateless descriptors; all mutable state lives on the device.
"""

import os
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass

from fwupdate.errors import DeviceNotFoundError, NotSpecialDeviceError
from fwupdate.types import Outcome, ResolvedArtifact, TargetKind, TargetName


@dataclass(frozen=True)
class StepResult:
    """Result of one verify or install call.

    Attributes:
        outcome: Classified result.
        bricking_window: Seconds the target had no consistent image, when
            an install replaced its content.
        message: Optional human-readable detail.
    """

    outcome: Outcome
    bricking_window: float | None = None
    message: str | None = None


class DeviceTarget(ABC):
    """A firmware target addressed by a device path."""

    kind: TargetKind

    def __init__(self, name: TargetName, device_path: str) -> None:
        self.name = name
        self.device_path = device_path

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.name.value}, '{self.device_path}')>"

    @abstractmethod
    def verify(self, artifact: ResolvedArtifact) -> StepResult:
        """Compare the device content with the artifact, read-only.

        Returns VERIFIED_OK or VERIFIED_FAILED; device faults raise
        DeviceError.
        """

    @abstractmethod
    def install(self, artifact: ResolvedArtifact) -> StepResult:
        """Bring the device content up to date with the artifact.

        Returns UPDATED, SKIPPED or FAILED; device faults raise
        DeviceError.
        """


def is_special_device(device_path: str) -> bool:
    """Check if a path is a character or block device."""
    try:
        mode = os.stat(device_path).st_mode
    except OSError:
        return False
    return stat.S_ISCHR(mode) or stat.S_ISBLK(mode)


def require_special_device(device_path: str) -> None:
    """Raise unless device_path is an existing character or block device.

    Raises:
        DeviceNotFoundError: Path does not exist.
        NotSpecialDeviceError: Path is a regular file, directory, etc.
    """
    if not os.path.exists(device_path):
        raise DeviceNotFoundError(device_path)
    if not is_special_device(device_path):
        raise NotSpecialDeviceError(device_path)


__all__ = [
    "DeviceTarget",
    "StepResult",
    "is_special_device",
    "require_special_device",
]
