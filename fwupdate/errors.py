"""Error taxonomy for fwupdate.

Every error carries a human-readable message and a stable error code.
The category base classes map to a distinct process exit status so that
scripts driving the updater can tell failures apart:

- ConfigurationError: missing or invalid identifying parameters
- ManifestError: malformed manifest, incompatible device, unresolved section
- HashMismatchError: package content does not match its manifest
- DeviceError: the physical medium or a device tool misbehaved

Per-target verification mismatches are not errors; they are reported as
outcomes (see fwupdate.types.Outcome).
"""

from fwupdate.types import ExitStatus


class FwUpdateError(Exception):
    """Base exception for all fwupdate errors."""

    exit_status: ExitStatus = ExitStatus.TARGET_FAILED

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ConfigurationError(FwUpdateError):
    """Required parameters are missing or invalid."""

    exit_status = ExitStatus.CONFIGURATION_ERROR

    def __init__(self, message: str, error_code: str = "CONFIGURATION_ERROR") -> None:
        super().__init__(message, error_code)


class ManifestError(FwUpdateError):
    """Manifest is malformed, incompatible or incomplete."""

    exit_status = ExitStatus.MANIFEST_ERROR

    def __init__(self, message: str, error_code: str = "MANIFEST_ERROR") -> None:
        super().__init__(message, error_code)


class PackageError(ManifestError):
    """Firmware package could not be unpacked."""

    def __init__(self, message: str, error_code: str = "PACKAGE_ERROR") -> None:
        super().__init__(message, error_code)


class ArtifactMissingError(ManifestError):
    """A section's file is not present in the firmware package."""

    def __init__(self, section: str, path: str) -> None:
        super().__init__(
            f"File for section {section} not found in package: {path}",
            error_code="ARTIFACT_MISSING",
        )
        self.section = section
        self.path = path


class HashMismatchError(FwUpdateError):
    """File content does not match its declared hash."""

    exit_status = ExitStatus.HASH_MISMATCH

    def __init__(
        self, section: str, path: str, expected_hash: str, actual_hash: str
    ) -> None:
        super().__init__(
            f"Hash mismatch for section {section} ({path}). "
            f"Expected: {expected_hash}, Got: {actual_hash}. "
            "The firmware package is corrupt.",
            error_code="HASH_MISMATCH",
        )
        self.section = section
        self.path = path
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash


class DeviceError(FwUpdateError):
    """A device or device tool failed; the run cannot safely continue."""

    exit_status = ExitStatus.DEVICE_ERROR

    def __init__(
        self, message: str, device_path: str, error_code: str = "DEVICE_ERROR"
    ) -> None:
        super().__init__(message, error_code)
        self.device_path = device_path


class DeviceNotFoundError(DeviceError):
    """Device path does not exist."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"Device not found: {device_path}",
            device_path,
            error_code="DEVICE_NOT_FOUND",
        )


class NotSpecialDeviceError(DeviceError):
    """Path exists but is neither a character nor a block device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"Not a character or block device: {device_path}",
            device_path,
            error_code="NOT_SPECIAL_DEVICE",
        )


class MountError(DeviceError):
    """Mounting a partition failed."""

    def __init__(self, device_path: str, mount_point: str, detail: str) -> None:
        super().__init__(
            f"Failed to mount {device_path} at {mount_point}: {detail}",
            device_path,
            error_code="MOUNT_FAILED",
        )
        self.mount_point = mount_point


class UnmountError(DeviceError):
    """Unmounting a partition failed."""

    def __init__(self, device_path: str, detail: str) -> None:
        super().__init__(
            f"Failed to unmount {device_path}: {detail}",
            device_path,
            error_code="UNMOUNT_FAILED",
        )


class FilesystemCheckError(DeviceError):
    """Filesystem check reported unrecoverable corruption."""

    def __init__(self, device_path: str, status: int) -> None:
        super().__init__(
            f"Filesystem check failed on {device_path} with status {status}",
            device_path,
            error_code="FSCK_FAILED",
        )
        self.status = status


class InvalidImageError(DeviceError):
    """Candidate image is empty or unreadable."""

    def __init__(self, device_path: str, image_path: str) -> None:
        super().__init__(
            f"Cannot determine a usable size for {image_path} "
            f"(target {device_path})",
            device_path,
            error_code="INVALID_IMAGE",
        )
        self.image_path = image_path


class FlashEraseError(DeviceError):
    """Erasing flash blocks failed."""

    def __init__(self, device_path: str, detail: str) -> None:
        super().__init__(
            f"Failed to erase {device_path}: {detail}",
            device_path,
            error_code="FLASH_ERASE_FAILED",
        )


class FlashWriteError(DeviceError):
    """Writing to a flash device failed."""

    def __init__(self, device_path: str, detail: str) -> None:
        super().__init__(
            f"Failed to write {device_path}: {detail}",
            device_path,
            error_code="FLASH_WRITE_FAILED",
        )


class IOControllerError(DeviceError):
    """The IO controller tool reported a device fault."""

    def __init__(self, device_path: str, detail: str, exit_code: int | None) -> None:
        super().__init__(
            f"IO controller error on {device_path}: {detail}",
            device_path,
            error_code="IOC_DEVICE_ERROR",
        )
        self.exit_code = exit_code


class CommandExecutionError(DeviceError):
    """An external system command could not be executed."""

    def __init__(self, command: str, detail: str, device_path: str = "") -> None:
        super().__init__(
            f"Failed to run {command}: {detail}",
            device_path,
            error_code="COMMAND_FAILED",
        )
        self.command = command


__all__ = [
    "ArtifactMissingError",
    "CommandExecutionError",
    "ConfigurationError",
    "DeviceError",
    "DeviceNotFoundError",
    "FilesystemCheckError",
    "FlashEraseError",
    "FlashWriteError",
    "FwUpdateError",
    "HashMismatchError",
    "IOControllerError",
    "InvalidImageError",
    "ManifestError",
    "MountError",
    "NotSpecialDeviceError",
    "PackageError",
    "UnmountError",
]
