"""Wrappers for the system commands the updater depends on.

This module handles:
- Running external commands with logging and uniform error reporting
- Mount table lookups via /proc/mounts
- mount / umount / fsck / sync

Nothing here retries or times out writes: callers decide which steps
may carry a timeout.
"""

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path

from fwupdate.errors import CommandExecutionError, MountError, UnmountError

logger = logging.getLogger(__name__)

PROC_MOUNTS = "/proc/mounts"


def run_command(
    cmd: Sequence[str],
    *,
    timeout: int | None = None,
    device_path: str = "",
) -> subprocess.CompletedProcess[str]:
    """Run a command and return its completed process.

    The exit status is not checked; callers classify it.

    Args:
        cmd: Command and arguments.
        timeout: Timeout in seconds (None = wait forever).
        device_path: Device the command acts on, for error reporting.

    Returns:
        CompletedProcess with captured text output.

    Raises:
        CommandExecutionError: The command could not be started or timed out.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Running: %s", cmd_str)

    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.error("Command timed out after %ss: %s", timeout, cmd_str)
        raise CommandExecutionError(
            cmd_str, f"timed out after {timeout} seconds", device_path
        ) from e
    except OSError as e:
        logger.error("Failed to execute %s: %s", cmd_str, e)
        raise CommandExecutionError(cmd_str, str(e), device_path) from e

    logger.debug("Exit code %d: %s", result.returncode, cmd_str)
    return result


def _unescape_mount_field(field: str) -> str:
    """Decode the octal escapes /proc/mounts uses for spaces and tabs."""
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def read_mount_table() -> list[tuple[str, str]]:
    """Return (device, mount point) pairs from /proc/mounts."""
    entries: list[tuple[str, str]] = []
    try:
        with open(PROC_MOUNTS) as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 2:
                    device = _unescape_mount_field(parts[0])
                    mount_point = _unescape_mount_field(parts[1])
                    entries.append((device, mount_point))
    except OSError:
        logger.warning("Could not read %s, assuming nothing is mounted", PROC_MOUNTS)
    return entries


def get_mount_points(device_path: str) -> list[str]:
    """Get the mount points of exactly this device (not its partitions)."""
    real_device = os.path.realpath(device_path)
    return [
        mount_point
        for device, mount_point in read_mount_table()
        if device == device_path or os.path.realpath(device) == real_device
    ]


def is_mount_point(path: str | Path) -> bool:
    """Check whether something is mounted at path."""
    target = os.path.realpath(path)
    return any(
        os.path.realpath(mount_point) == target
        for _, mount_point in read_mount_table()
    )


def mount(
    device_path: str,
    mount_point: str | Path,
    *,
    read_only: bool,
    options: str = "",
    timeout: int | None = None,
) -> None:
    """Mount a device.

    Raises:
        MountError: mount exited non-zero.
    """
    opts = ["ro" if read_only else "rw"]
    if options:
        opts.append(options)
    cmd = ["mount", "-o", ",".join(opts), device_path, str(mount_point)]
    logger.info(
        "Mounting %s at %s (%s)",
        device_path,
        mount_point,
        "read-only" if read_only else "read-write",
    )

    result = run_command(cmd, timeout=timeout, device_path=device_path)
    if result.returncode != 0:
        raise MountError(
            device_path, str(mount_point), result.stderr.strip() or "mount failed"
        )


def umount(target: str | Path, *, timeout: int | None = None) -> None:
    """Unmount a device or mount point.

    Raises:
        UnmountError: umount exited non-zero.
    """
    logger.info("Unmounting %s", target)
    result = run_command(
        ["umount", str(target)], timeout=timeout, device_path=str(target)
    )
    if result.returncode != 0:
        raise UnmountError(str(target), result.stderr.strip() or "umount failed")


def force_unmount(device_path: str, *, timeout: int | None = None) -> list[str]:
    """Unmount every mount of a device.

    Returns:
        Mount points that were unmounted.

    Raises:
        UnmountError: One of the mounts could not be released.
    """
    mount_points = get_mount_points(device_path)
    for mount_point in mount_points:
        logger.warning("%s is mounted at %s, unmounting", device_path, mount_point)
        result = run_command(
            ["umount", "-f", mount_point], timeout=timeout, device_path=device_path
        )
        if result.returncode != 0:
            raise UnmountError(
                device_path,
                f"{mount_point}: {result.stderr.strip() or 'umount failed'}",
            )
    return mount_points


def check_filesystem(
    device_path: str,
    *,
    command: str = "fsck",
    timeout: int | None = None,
) -> int:
    """Run a filesystem check with automatic repair.

    Returns:
        The check tool's exit status.
    """
    logger.info("Checking filesystem on %s", device_path)
    result = run_command(
        [command, "-p", device_path], timeout=timeout, device_path=device_path
    )
    return result.returncode


def sync() -> None:
    """Flush all filesystem buffers to their devices."""
    os.sync()


__all__ = [
    "check_filesystem",
    "force_unmount",
    "get_mount_points",
    "is_mount_point",
    "mount",
    "read_mount_table",
    "run_command",
    "sync",
    "umount",
]
