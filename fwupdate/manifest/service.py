"""Manifest loading, compatibility validation and section resolution."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from fwupdate.errors import ManifestError
from fwupdate.manifest.schema import ManifestSchema
from fwupdate.types import ResolvedArtifact

logger = logging.getLogger(__name__)


def parse_manifest(data: Any) -> ManifestSchema:
    """Validate raw manifest data.

    Args:
        data: Decoded JSON content.

    Returns:
        Validated ManifestSchema.

    Raises:
        ManifestError: Data does not describe a manifest.
    """
    if not isinstance(data, dict):
        raise ManifestError(
            f"Expected a JSON object, got {type(data).__name__}",
            error_code="MANIFEST_INVALID",
        )
    try:
        return ManifestSchema.model_validate(data)
    except ValidationError as e:
        raise ManifestError(
            f"Invalid manifest: {e}", error_code="MANIFEST_INVALID"
        ) from e


def load_manifest(path: Path) -> ManifestSchema:
    """Load and validate a manifest file.

    Args:
        path: Path to the JSON manifest.

    Returns:
        Validated ManifestSchema.

    Raises:
        ManifestError: File is missing, not JSON, or not a valid manifest.
    """
    logger.debug("Loading manifest %s", path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ManifestError(
            f"Manifest not found: {path}", error_code="MANIFEST_NOT_FOUND"
        ) from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestError(
            f"Cannot read manifest {path}: {e}", error_code="MANIFEST_INVALID"
        ) from e

    manifest = parse_manifest(data)
    logger.info(
        "Loaded manifest: model=%s, generations=%s, sections=%s",
        manifest.model,
        manifest.generations,
        list(manifest.sections),
    )
    return manifest


def validate_manifest(manifest: ManifestSchema, model: str, generation: str) -> None:
    """Check that the manifest targets this hardware.

    The model must match exactly. Any one of the declared generations
    matching is enough.

    Raises:
        ManifestError: Model or generation is not supported.
    """
    if manifest.model != model:
        logger.error("Manifest model %s does not match %s", manifest.model, model)
        raise ManifestError(
            f"Firmware is for model {manifest.model!r}, device is {model!r}",
            error_code="MODEL_MISMATCH",
        )

    if str(generation) not in manifest.generations:
        logger.error(
            "Generation %s not in manifest generations %s",
            generation,
            manifest.generations,
        )
        raise ManifestError(
            f"Firmware does not support generation {generation!r} "
            f"(supported: {', '.join(manifest.generations) or 'none'})",
            error_code="GENERATION_MISMATCH",
        )

    logger.info("Manifest compatible with model=%s generation=%s", model, generation)


def resolve_section(
    manifest: ManifestSchema, section: str, base_dir: Path
) -> ResolvedArtifact:
    """Resolve a section to its extracted file and expected hash.

    Args:
        manifest: Validated manifest.
        section: Section name.
        base_dir: Directory the package was extracted to.

    Returns:
        ResolvedArtifact for the section.

    Raises:
        ManifestError: Section is absent or lacks a filename or hash.
    """
    entry = manifest.sections.get(section)
    if entry is None:
        raise ManifestError(
            f"Section {section!r} not found in manifest",
            error_code="SECTION_MISSING",
        )
    if not entry.filename or not entry.hash:
        raise ManifestError(
            f"Section {section!r} has no file name or hash",
            error_code="SECTION_INCOMPLETE",
        )

    artifact = ResolvedArtifact(
        section=section,
        path=(base_dir / entry.filename).absolute(),
        expected_hash=entry.hash,
    )
    logger.debug("Resolved section %s -> %s", section, artifact.path)
    return artifact


def resolve_sections(
    manifest: ManifestSchema, sections: Iterable[str], base_dir: Path
) -> dict[str, ResolvedArtifact]:
    """Resolve several sections, each once, preserving first-seen order."""
    resolved: dict[str, ResolvedArtifact] = {}
    for section in sections:
        if section not in resolved:
            resolved[section] = resolve_section(manifest, section, base_dir)
    return resolved


__all__ = [
    "load_manifest",
    "parse_manifest",
    "resolve_section",
    "resolve_sections",
    "validate_manifest",
]
