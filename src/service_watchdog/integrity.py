"""Self-integrity verification of the deployed runtime artifact."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from .outcomes import IntegrityStatus

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def compute_digest(path: Path) -> str:
    """Return the hex SHA-256 digest of a file's content."""

    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def read_reference(reference_hash_path: Path) -> str:
    value = Path(reference_hash_path).read_text(encoding="utf-8").strip().lower()
    if not value:
        raise ValueError(f"Reference hash file {reference_hash_path} is empty")
    return value


def verify(artifact_path: Path, reference_hash_path: Path) -> IntegrityStatus:
    """Compare the live artifact hash with the recorded reference.

    Any error while reading or hashing yields ``CHECK_FAILED``, which callers
    treat exactly like ``TAMPERED``.
    """

    if not Path(reference_hash_path).exists():
        logger.error(
            "Reference hash missing",
            extra={"reference_hash_path": str(reference_hash_path)},
        )
        return IntegrityStatus.MISSING

    try:
        expected = read_reference(reference_hash_path)
        actual = compute_digest(artifact_path)
    except (OSError, ValueError) as exc:
        logger.error(
            "Integrity check failed: %s",
            exc,
            extra={"artifact_path": str(artifact_path)},
        )
        return IntegrityStatus.CHECK_FAILED

    if actual != expected:
        logger.error(
            "Runtime artifact hash mismatch",
            extra={"artifact_path": str(artifact_path), "expected": expected, "actual": actual},
        )
        return IntegrityStatus.TAMPERED

    logger.debug("Runtime artifact verified", extra={"artifact_path": str(artifact_path)})
    return IntegrityStatus.VERIFIED


__all__ = ["compute_digest", "read_reference", "verify"]
