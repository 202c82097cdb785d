"""Raw flash updater for bootloader images.

The image occupies the start of the flash device: a small header
followed by the body, total size equal to the source file. Installs
erase the covering blocks, write the body, and write the header last.
An install interrupted between the two writes leaves a device whose
header does not match the image, so it is never mistaken for a good
copy.
"""

import logging
import os
from pathlib import Path

from fwupdate import system
from fwupdate.errors import FlashEraseError, FlashWriteError, InvalidImageError
from fwupdate.targets.base import DeviceTarget, StepResult, require_special_device
from fwupdate.targets.hashing import DEFAULT_BLOCK_SIZE
from fwupdate.types import Outcome, ResolvedArtifact, TargetKind, TargetName

logger = logging.getLogger(__name__)

DEFAULT_HEADER_SIZE = 32
DEFAULT_ERASE_BLOCK_SIZE = 4096


def erase_block_count(size: int, erase_block_size: int) -> int:
    """Number of erase blocks covering size bytes (rounded up)."""
    return -(-size // erase_block_size)


def device_matches_file(
    device_path: str,
    image_path: Path,
    size: int,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> bool:
    """Compare the first size bytes of a device with a file.

    Raises:
        FlashWriteError: The device cannot be read.
    """
    compared = 0
    try:
        with open(device_path, "rb") as dev, open(image_path, "rb") as img:
            while compared < size:
                read_size = min(block_size, size - compared)
                expected = img.read(read_size)
                actual = dev.read(read_size)
                if not expected or actual != expected:
                    return False
                compared += len(expected)
    except OSError as e:
        raise FlashWriteError(device_path, f"read failed: {e}") from e
    return True


def erase_blocks(
    device_path: str, block_count: int, *, command: str = "flash_erase"
) -> None:
    """Erase block_count erase blocks from offset 0.

    No timeout: an erase must run to completion.

    Raises:
        FlashEraseError: The erase tool failed.
    """
    logger.info("Erasing %d blocks of %s", block_count, device_path)
    result = system.run_command(
        [command, device_path, "0", str(block_count)], device_path=device_path
    )
    if result.returncode != 0:
        raise FlashEraseError(
            device_path,
            result.stderr.strip() or f"{command} exited {result.returncode}",
        )


def write_region(
    device_path: str,
    image_path: Path,
    offset: int,
    length: int,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> int:
    """Copy image bytes [offset, offset + length) to the same device offset.

    Data is flushed and fsynced before returning.

    Returns:
        Number of bytes written.

    Raises:
        FlashWriteError: I/O error while writing.
    """
    written = 0
    try:
        with open(image_path, "rb") as src, open(device_path, "r+b") as dst:
            src.seek(offset)
            dst.seek(offset)
            while written < length:
                chunk = src.read(min(block_size, length - written))
                if not chunk:
                    break
                dst.write(chunk)
                written += len(chunk)
            dst.flush()
            os.fsync(dst.fileno())
    except OSError as e:
        raise FlashWriteError(device_path, str(e)) from e

    logger.debug("Wrote %d bytes at offset %d of %s", written, offset, device_path)
    return written


class FlashDeviceTarget(DeviceTarget):
    """A raw flash device holding a bootloader image."""

    kind = TargetKind.FLASH

    def __init__(
        self,
        name: TargetName,
        device_path: str,
        *,
        header_size: int = DEFAULT_HEADER_SIZE,
        erase_block_size: int = DEFAULT_ERASE_BLOCK_SIZE,
        erase_command: str = "flash_erase",
    ) -> None:
        super().__init__(name, device_path)
        self.header_size = header_size
        self.erase_block_size = erase_block_size
        self.erase_command = erase_command

    def _image_size(self, artifact: ResolvedArtifact) -> int:
        require_special_device(self.device_path)
        try:
            size = artifact.path.stat().st_size
        except OSError as e:
            raise InvalidImageError(self.device_path, str(artifact.path)) from e
        if size <= 0:
            raise InvalidImageError(self.device_path, str(artifact.path))
        return size

    def verify(self, artifact: ResolvedArtifact) -> StepResult:
        size = self._image_size(artifact)
        if device_matches_file(self.device_path, artifact.path, size):
            logger.info("%s verified (%d bytes)", self.device_path, size)
            return StepResult(Outcome.VERIFIED_OK)
        logger.warning("%s does not match %s", self.device_path, artifact.path.name)
        return StepResult(Outcome.VERIFIED_FAILED, message="flash content differs")

    def install(self, artifact: ResolvedArtifact) -> StepResult:
        size = self._image_size(artifact)
        if device_matches_file(self.device_path, artifact.path, size):
            logger.info("%s already up to date", self.device_path)
            return StepResult(Outcome.SKIPPED)

        header = min(self.header_size, size)
        logger.info(
            "Writing %s (%d bytes) to %s", artifact.path.name, size, self.device_path
        )
        erase_blocks(
            self.device_path,
            erase_block_count(size, self.erase_block_size),
            command=self.erase_command,
        )
        # Body first, header last.
        self._write_body(artifact.path, header, size - header)
        self._write_header(artifact.path, header)

        if not device_matches_file(self.device_path, artifact.path, size):
            logger.error("%s does not match after write", self.device_path)
            return StepResult(Outcome.FAILED, message="read-back mismatch")

        logger.info("%s updated", self.device_path)
        return StepResult(Outcome.UPDATED)

    def _write_body(self, image_path: Path, offset: int, length: int) -> None:
        write_region(self.device_path, image_path, offset, length)

    def _write_header(self, image_path: Path, length: int) -> None:
        write_region(self.device_path, image_path, 0, length)


__all__ = [
    "DEFAULT_ERASE_BLOCK_SIZE",
    "DEFAULT_HEADER_SIZE",
    "FlashDeviceTarget",
    "device_matches_file",
    "erase_block_count",
    "erase_blocks",
    "write_region",
]
