"""Content hashing and artifact verification.

Manifests and boot partition checksum files record md5 digests as
lowercase hex. Comparisons are exact and case-sensitive.
"""

import hashlib
import logging
from pathlib import Path

from fwupdate.errors import ArtifactMissingError, HashMismatchError
from fwupdate.types import ResolvedArtifact

logger = logging.getLogger(__name__)

# Default block size for I/O operations (1 MiB)
DEFAULT_BLOCK_SIZE = 1024 * 1024


def compute_file_hash(
    file_path: str | Path,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> str:
    """Compute the md5 digest of a file.

    Args:
        file_path: Path to the file to hash.
        block_size: Block size for reading.

    Returns:
        Lowercase hex digest.
    """
    hasher = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(block_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_artifact(
    artifact: ResolvedArtifact, block_size: int = DEFAULT_BLOCK_SIZE
) -> str:
    """Check an artifact's file against its declared hash.

    Args:
        artifact: Resolved manifest section.
        block_size: Block size for reading.

    Returns:
        The computed digest.

    Raises:
        ArtifactMissingError: The file is not in the package.
        HashMismatchError: The digest differs from the declared hash.
    """
    if not artifact.path.is_file():
        raise ArtifactMissingError(artifact.section, str(artifact.path))

    actual_hash = compute_file_hash(artifact.path, block_size)
    if actual_hash != artifact.expected_hash:
        logger.error(
            "Hash mismatch for %s: expected=%s, got=%s",
            artifact.section,
            artifact.expected_hash,
            actual_hash,
        )
        raise HashMismatchError(
            artifact.section, str(artifact.path), artifact.expected_hash, actual_hash
        )

    logger.info("Hash verified for section %s", artifact.section)
    return actual_hash


def artifact_matches(artifact: ResolvedArtifact) -> bool:
    """Non-raising form of verify_artifact."""
    try:
        verify_artifact(artifact)
    except (ArtifactMissingError, HashMismatchError):
        return False
    return True


__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "artifact_matches",
    "compute_file_hash",
    "verify_artifact",
]
