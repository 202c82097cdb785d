"""Firmware package handling: extraction and the per-run workspace."""

from fwupdate.package.archive import extract_package
from fwupdate.package.workspace import Workspace

__all__ = ["Workspace", "extract_package"]
