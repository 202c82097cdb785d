"""fwupdate - Safe firmware update and verification for redundant-boot devices.

This package orchestrates updating or verifying the boot partitions, raw
flash bootloaders and IO controller firmware of an embedded device from a
single firmware package.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
