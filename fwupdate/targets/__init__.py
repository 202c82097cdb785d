"""Firmware targets.

This module handles:
- Artifact hash verification
- Boot partition verify/install with dual-partition ordering
- Raw flash verify/erase/write with header-last writes
- IO controller tool exit status classification

Every target implements the DeviceTarget interface (verify, install).
"""

from fwupdate.targets.base import DeviceTarget, StepResult, require_special_device
from fwupdate.targets.boot import BootPartitionTarget, plan_boot_install_order
from fwupdate.targets.flash import FlashDeviceTarget, erase_block_count
from fwupdate.targets.hashing import (
    artifact_matches,
    compute_file_hash,
    verify_artifact,
)
from fwupdate.targets.ioc import InstallStatus, IOControllerTarget, VerifyStatus

__all__ = [
    "BootPartitionTarget",
    "DeviceTarget",
    "FlashDeviceTarget",
    "IOControllerTarget",
    "InstallStatus",
    "StepResult",
    "VerifyStatus",
    "artifact_matches",
    "compute_file_hash",
    "erase_block_count",
    "plan_boot_install_order",
    "require_special_device",
    "verify_artifact",
]
