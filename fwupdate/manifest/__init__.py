"""Firmware manifest handling.

This module handles:
- Parsing the JSON manifest shipped in a firmware package
- Checking model and generation compatibility
- Resolving sections to extracted files and expected hashes
"""

from fwupdate.manifest.schema import ManifestSchema, SectionSchema
from fwupdate.manifest.service import (
    load_manifest,
    parse_manifest,
    resolve_section,
    resolve_sections,
    validate_manifest,
)

__all__ = [
    "ManifestSchema",
    "SectionSchema",
    "load_manifest",
    "parse_manifest",
    "resolve_section",
    "resolve_sections",
    "validate_manifest",
]
