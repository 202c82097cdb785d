"""Boot partition updater.

Each boot partition holds a filesystem with two relevant files at its
root: the boot image and a checksum file (``<md5>  <name>`` per line).
Per operation the partition goes through::

    Unmounted -> FsChecked -> Mounted(ro|rw) -> Verified|Installed -> Unmounted

All boot partitions share the workspace mount point, one at a time.

Install replaces the partition content in place. Between deleting the
old files and unmounting with the new ones the partition is not
bootable (the bricking window); its duration is measured and reported.
With two redundant partitions the caller orders installs so that a good
partition exists during every window but the last
(see plan_boot_install_order).
"""

import filecmp
import logging
import os
import shutil
import time
from collections.abc import Callable
from pathlib import Path

from fwupdate import system
from fwupdate.errors import DeviceError, FilesystemCheckError
from fwupdate.targets.base import DeviceTarget, StepResult
from fwupdate.targets.hashing import compute_file_hash
from fwupdate.types import Outcome, ResolvedArtifact, TargetKind, TargetName

logger = logging.getLogger(__name__)


def parse_checksum_file(text: str) -> dict[str, str]:
    """Parse md5sum-style lines into a {file name: digest} mapping.

    Blank lines and lines without two fields are ignored. A leading
    ``*`` (binary mode marker) on the file name is dropped.
    """
    checksums: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        digest, name = parts
        checksums[name.lstrip("*")] = digest
    return checksums


def format_checksum_line(digest: str, name: str) -> str:
    """Format one checksum file line."""
    return f"{digest}  {name}\n"


class BootPartitionTarget(DeviceTarget):
    """A redundant boot partition holding the boot image."""

    kind = TargetKind.BOOT_PARTITION

    def __init__(
        self,
        name: TargetName,
        device_path: str,
        mount_point: Path,
        *,
        checksum_file_name: str = "md5sums",
        image_name: str | None = None,
        mount_options: str = "nodev,noexec,data=ordered",
        fsck_command: str = "fsck",
        fsck_max_ok_status: int = 2,
        command_timeout: int | None = None,
    ) -> None:
        super().__init__(name, device_path)
        self.mount_point = mount_point
        self.checksum_file_name = checksum_file_name
        self.image_name = image_name
        self.mount_options = mount_options
        self.fsck_command = fsck_command
        self.fsck_max_ok_status = fsck_max_ok_status
        self.command_timeout = command_timeout

    # Device lifecycle

    def _prepare(self) -> None:
        """Release any existing mounts and check the filesystem.

        Raises:
            UnmountError: The partition is mounted and cannot be released.
            FilesystemCheckError: The filesystem is beyond repair.
        """
        system.force_unmount(self.device_path, timeout=self.command_timeout)

        status = system.check_filesystem(
            self.device_path, command=self.fsck_command, timeout=self.command_timeout
        )
        # Negative: the check was killed by a signal and never finished.
        if status < 0 or status > self.fsck_max_ok_status:
            logger.error("Filesystem check on %s returned %d", self.device_path, status)
            raise FilesystemCheckError(self.device_path, status)
        if status:
            logger.warning(
                "Filesystem check repaired errors on %s (status %d)",
                self.device_path,
                status,
            )

    def _mount(self, *, read_only: bool) -> None:
        system.mount(
            self.device_path,
            self.mount_point,
            read_only=read_only,
            options=self.mount_options,
            timeout=self.command_timeout,
        )

    def _unmount(self, *, in_window: bool = False) -> None:
        # No timeout while the partition holds no consistent image.
        system.sync()
        system.umount(
            self.mount_point, timeout=None if in_window else self.command_timeout
        )

    # Content checks (partition mounted)

    def _installed_name(self, artifact: ResolvedArtifact) -> str:
        return self.image_name or artifact.path.name

    def _read_checksums(self) -> dict[str, str] | None:
        checksum_path = self.mount_point / self.checksum_file_name
        try:
            return parse_checksum_file(checksum_path.read_text(encoding="utf-8"))
        except (FileNotFoundError, UnicodeDecodeError):
            return None

    def _read_error(self, e: OSError) -> DeviceError:
        logger.error("Reading %s failed: %s", self.device_path, e)
        return DeviceError(
            f"Failed to read boot partition {self.device_path}: {e}",
            self.device_path,
            error_code="PARTITION_READ_FAILED",
        )

    def _content_matches(self, artifact: ResolvedArtifact) -> tuple[bool, str]:
        """Check installed image bytes and checksum file against the artifact.

        Returns:
            Tuple of (up to date, reason).

        Raises:
            DeviceError: The mounted partition could not be read.
        """
        try:
            return self._compare_content(artifact)
        except OSError as e:
            raise self._read_error(e) from e

    def _compare_content(self, artifact: ResolvedArtifact) -> tuple[bool, str]:
        name = self._installed_name(artifact)
        installed = self.mount_point / name

        if not installed.is_file():
            return False, f"{name} not present"
        if not filecmp.cmp(artifact.path, installed, shallow=False):
            return False, f"{name} differs from package"

        checksums = self._read_checksums()
        if checksums is None:
            return False, f"{self.checksum_file_name} missing or unreadable"
        recorded = checksums.get(name)
        if recorded != artifact.expected_hash:
            return False, f"{self.checksum_file_name} entry for {name} is stale"
        if compute_file_hash(installed) != recorded:
            return False, f"{name} does not match {self.checksum_file_name}"

        return True, "up to date"

    def _checksums_consistent(self) -> tuple[bool, str]:
        """Check every file listed in the checksum file against its digest.

        Raises:
            DeviceError: The mounted partition could not be read.
        """
        try:
            return self._compare_checksums()
        except OSError as e:
            raise self._read_error(e) from e

    def _compare_checksums(self) -> tuple[bool, str]:
        checksums = self._read_checksums()
        if not checksums:
            return False, f"{self.checksum_file_name} missing or empty"
        for name, digest in checksums.items():
            # Entries must name files at the partition root.
            if Path(name).name != name or name in (".", ".."):
                return False, f"unsafe entry {name!r} in {self.checksum_file_name}"
            path = self.mount_point / name
            if not path.is_file():
                return False, f"{name} listed but not present"
            if compute_file_hash(path) != digest:
                return False, f"{name} does not match {self.checksum_file_name}"
        return True, "consistent"

    def _check_read_only(
        self, check: Callable[[], tuple[bool, str]]
    ) -> tuple[bool, str]:
        """Run a content check with the partition mounted read-only."""
        self._prepare()
        self._mount(read_only=True)
        try:
            return check()
        finally:
            self._unmount()

    # Operations

    def self_test(self) -> bool:
        """Check whether the partition currently holds a usable image.

        Filesystem check plus checksum validation of whatever is
        installed; nothing is written. Device faults still raise.
        """
        ok, reason = self._check_read_only(self._checksums_consistent)
        logger.info(
            "Self-test of %s: %s (%s)",
            self.device_path,
            "passed" if ok else "failed",
            reason,
        )
        return ok

    def verify(self, artifact: ResolvedArtifact) -> StepResult:
        ok, reason = self._check_read_only(lambda: self._content_matches(artifact))
        if ok:
            logger.info("%s verified", self.device_path)
            return StepResult(Outcome.VERIFIED_OK)
        logger.warning("%s verification failed: %s", self.device_path, reason)
        return StepResult(Outcome.VERIFIED_FAILED, message=reason)

    def install(self, artifact: ResolvedArtifact) -> StepResult:
        self._prepare()
        self._mount(read_only=False)

        mounted = True
        in_window = False
        try:
            up_to_date, reason = self._content_matches(artifact)
            if up_to_date:
                logger.info("%s already up to date", self.device_path)
                self._unmount()
                mounted = False
                return StepResult(Outcome.SKIPPED)

            logger.info("Updating %s: %s", self.device_path, reason)
            logger.warning("Entering bricking window on %s", self.device_path)
            in_window = True
            window_start = time.monotonic()
            self._replace_content(artifact)
            self._unmount(in_window=True)
            mounted = False
            window = time.monotonic() - window_start
            logger.info(
                "Left bricking window on %s after %.2fs", self.device_path, window
            )
        finally:
            if mounted:
                self._unmount(in_window=in_window)

        ok, reason = self._check_read_only(lambda: self._content_matches(artifact))
        if not ok:
            logger.error(
                "%s does not match after install: %s", self.device_path, reason
            )
            return StepResult(Outcome.FAILED, bricking_window=window, message=reason)

        logger.info("%s updated", self.device_path)
        return StepResult(Outcome.UPDATED, bricking_window=window)

    def _replace_content(self, artifact: ResolvedArtifact) -> None:
        """Delete all top-level files, then write the image and checksum file.

        Raises:
            DeviceError: The partition could not be written.
        """
        name = self._installed_name(artifact)
        try:
            for entry in self.mount_point.iterdir():
                if entry.is_symlink() or entry.is_file():
                    logger.debug("Removing %s", entry.name)
                    entry.unlink()

            installed = self.mount_point / name
            with open(artifact.path, "rb") as src, open(installed, "wb") as dst:
                shutil.copyfileobj(src, dst)
                dst.flush()
                os.fsync(dst.fileno())

            checksum_path = self.mount_point / self.checksum_file_name
            with open(checksum_path, "w", encoding="utf-8") as f:
                f.write(format_checksum_line(compute_file_hash(installed), name))
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.error("Writing %s failed: %s", self.device_path, e)
            raise DeviceError(
                f"Failed to write boot partition {self.device_path}: {e}",
                self.device_path,
                error_code="PARTITION_WRITE_FAILED",
            ) from e


def plan_boot_install_order(
    first: BootPartitionTarget, second: BootPartitionTarget
) -> list[BootPartitionTarget]:
    """Order two redundant boot partitions for installation.

    The first partition is self-tested. If it is unusable it is repaired
    first while the second one is still untouched. Otherwise the second
    partition goes first so the known-good one is replaced last.
    """
    if first.self_test():
        logger.info(
            "%s is good, updating %s first", first.device_path, second.device_path
        )
        return [second, first]

    logger.warning(
        "%s failed its self-test, updating it before %s",
        first.device_path,
        second.device_path,
    )
    return [first, second]


__all__ = [
    "BootPartitionTarget",
    "format_checksum_line",
    "parse_checksum_file",
    "plan_boot_install_order",
]
