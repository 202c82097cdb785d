"""Run workspace: extraction directory and shared mount point.

One Workspace exists per run. Every boot partition operation mounts at
the same mount point, one at a time. Release happens exactly once, on
every exit path, and never deletes anything below a mount that could
not be released.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from fwupdate import system
from fwupdate.errors import DeviceError

logger = logging.getLogger(__name__)


class Workspace:
    """Temporary directories owned by one update or verify run.

    Attributes:
        root: Top-level temporary directory.
        extract_dir: Where the firmware package is unpacked.
        mount_point: Shared mount point for boot partitions.
    """

    def __init__(
        self, tmp_dir: Path | None = None, *, command_timeout: int | None = None
    ) -> None:
        self._tmp_dir = tmp_dir
        self._command_timeout = command_timeout
        self._released = False
        self._root: Path | None = None

    def acquire(self) -> "Workspace":
        """Create the workspace directories."""
        if self._root is not None:
            raise RuntimeError("Workspace already acquired")
        if self._tmp_dir is not None:
            self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._root = Path(tempfile.mkdtemp(prefix="fwupdate-", dir=self._tmp_dir))
        self.extract_dir.mkdir()
        self.mount_point.mkdir()
        logger.debug("Workspace created at %s", self.root)
        return self

    @property
    def root(self) -> Path:
        """Top-level temporary directory.

        Raises:
            RuntimeError: The workspace was never acquired.
        """
        if self._root is None:
            raise RuntimeError("Workspace not acquired")
        return self._root

    @property
    def extract_dir(self) -> Path:
        """Where the firmware package is unpacked."""
        return self.root / "package"

    @property
    def mount_point(self) -> Path:
        """Shared mount point for boot partitions."""
        return self.root / "mnt"

    @property
    def released(self) -> bool:
        """Whether release() already ran."""
        return self._released

    def release(self) -> None:
        """Unmount the mount point and remove the workspace.

        Safe to call more than once; only the first call has an effect.
        """
        if self._released or self._root is None:
            return
        self._released = True

        mount_released = True
        if system.is_mount_point(self.mount_point):
            logger.warning("Mount point %s still in use, unmounting", self.mount_point)
            try:
                system.sync()
                system.umount(self.mount_point, timeout=self._command_timeout)
            except DeviceError as e:
                mount_released = False
                logger.error("Could not release %s: %s", self.mount_point, e.message)

        shutil.rmtree(self.extract_dir, ignore_errors=True)

        if not mount_released:
            logger.error("Leaving %s in place, a partition is still mounted", self.root)
            return

        try:
            self.mount_point.rmdir()
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.mount_point, e)
        shutil.rmtree(self.root, ignore_errors=True)
        logger.debug("Workspace %s removed", self.root)

    def __enter__(self) -> "Workspace":
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


__all__ = ["Workspace"]
