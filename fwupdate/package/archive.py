"""Firmware package extraction.

A firmware package is a tarball (optionally gzip, bzip2 or xz
compressed) holding a manifest and one file per firmware section.
"""

import logging
import tarfile
from pathlib import Path

from fwupdate.errors import PackageError

logger = logging.getLogger(__name__)


def extract_package(package_path: Path, dest_dir: Path) -> Path:
    """Extract a firmware package into dest_dir.

    Args:
        package_path: Path to the package tarball.
        dest_dir: Destination directory (created if missing).

    Returns:
        dest_dir, for chaining.

    Raises:
        PackageError: Package is missing, unreadable, or unsafe to extract.
    """
    if not package_path.is_file():
        raise PackageError(
            f"Firmware package not found: {package_path}",
            error_code="PACKAGE_NOT_FOUND",
        )

    logger.info("Extracting %s to %s", package_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(package_path, "r:*") as tar:
            members = tar.getmembers()
            if not members:
                raise PackageError(
                    f"Firmware package {package_path} is empty",
                    error_code="EMPTY_PACKAGE",
                )

            for member in members:
                # Security: prevent path traversal
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise PackageError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        error_code="PATH_TRAVERSAL",
                    )

            tar.extractall(dest_dir, filter="data")

    except tarfile.TarError as e:
        raise PackageError(
            f"Failed to extract {package_path}: {e}", error_code="TAR_ERROR"
        ) from e
    except OSError as e:
        raise PackageError(
            f"OS error extracting {package_path}: {e}", error_code="OS_ERROR"
        ) from e

    logger.info("Extracted %d entries from %s", len(members), package_path.name)
    return dest_dir


__all__ = ["extract_package"]
