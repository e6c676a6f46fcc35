# src/cache/fingerprint.py — v3
"""Cache key fingerprinting.

A fingerprint is the SHA-512 of a canonical JSON encoding of the operation
and its ordered subjects. The encoding has a fixed field order and no map
iteration, so the same logical key yields the same fingerprint in every run.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence

from artifactcache.cache.errors import SerializationError

FINGERPRINT_LENGTH = 128


def derive_fingerprint(operation: str, subjects: Sequence[str]) -> str:
    """Return the hex fingerprint for ``operation`` applied to ``subjects``.

    Args:
        operation: Logical operation tag.
        subjects: Subject identifiers; order is significant.

    Returns:
        128-character lowercase hex string.

    Raises:
        SerializationError: If the key cannot be encoded (non-string input).
    """
    payload = _canonical_key_bytes(operation, subjects)
    return hashlib.sha512(payload).hexdigest()


def is_fingerprint(value: str) -> bool:
    """Check that ``value`` looks like a fingerprint or blob id."""
    if len(value) != FINGERPRINT_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)


def _canonical_key_bytes(operation: str, subjects: Sequence[str]) -> bytes:
    if not isinstance(operation, str):
        raise SerializationError(
            "fingerprint.encode", f"operation must be str, got {type(operation).__name__}"
        )
    for subject in subjects:
        if not isinstance(subject, str):
            raise SerializationError(
                "fingerprint.encode", f"subject must be str, got {type(subject).__name__}"
            )
    try:
        text = json.dumps(
            {"op": operation, "subjects": list(subjects)},
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return text.encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError("fingerprint.encode", str(exc)) from exc
