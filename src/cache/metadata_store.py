# src/cache/metadata_store.py — v1
"""Fingerprint → record storage, one file per key under ``<root>/metadata``.

Records are written to a temp file in the metadata directory and renamed
onto the fingerprint name, so a reader sees either the previous record or
the new one, never a partial file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from artifactcache.cache.blob_store import DEFAULT_DIR_MODE, DEFAULT_TEMP_PREFIX
from artifactcache.cache.codec import RecordCodec
from artifactcache.cache.errors import SerializationError, StorageError, UsageError
from artifactcache.cache.fingerprint import is_fingerprint

logger = logging.getLogger(__name__)

METADATA_DIR = "metadata"


class MetadataStore:
    """Durable key → record mapping."""

    def __init__(
        self,
        root: Path | str,
        *,
        codec: RecordCodec | None = None,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
        dir_mode: int = DEFAULT_DIR_MODE,
    ) -> None:
        self._dir = Path(root) / METADATA_DIR
        self._codec = codec or RecordCodec()
        self._temp_prefix = temp_prefix
        self._dir_mode = dir_mode

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def codec(self) -> RecordCodec:
        return self._codec

    def path_for(self, fingerprint: str) -> Path:
        if not is_fingerprint(fingerprint):
            raise UsageError("metadata.path", f"invalid fingerprint {fingerprint!r:.40}")
        return self._dir / fingerprint

    def load(self, fingerprint: str) -> dict[str, Any] | None:
        """Return the stored record, or None when there is none (cache miss).

        Raises:
            StorageError: Record exists but cannot be read.
            SerializationError: Record cannot be decoded.
        """
        path = self.path_for(fingerprint)
        try:
            payload = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError("metadata.read", str(exc), path=str(path)) from exc

        try:
            return self._codec.loads(payload)
        except SerializationError as exc:
            raise SerializationError(
                "metadata.decode", exc.message, fingerprint=fingerprint
            ) from exc

    def save(self, fingerprint: str, record: dict[str, Any]) -> None:
        """Persist ``record`` under ``fingerprint``, replacing any previous one."""
        path = self.path_for(fingerprint)

        try:
            payload = self._codec.dumps(record)
        except SerializationError as exc:
            raise SerializationError(
                "metadata.encode", exc.message, fingerprint=fingerprint
            ) from exc

        self._ensure_dir()
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=self._temp_prefix, dir=self._dir)
        except OSError as exc:
            raise StorageError("metadata.mkstemp", str(exc), path=str(self._dir)) from exc

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            _remove_quietly(tmp_name)
            raise StorageError("metadata.write", str(exc), path=str(path)) from exc

        logger.debug("Saved record %s (%d bytes)", fingerprint[:16], len(payload))

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(mode=self._dir_mode, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError("metadata.mkdir", str(exc), path=str(self._dir)) from exc


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove temp file %s: %s", path, exc)
