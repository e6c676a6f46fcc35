# src/cache/entry.py — v1
"""Per-key working handle: record fields plus an optional blob being written.

Lifecycle::

    New (miss) ─write/write_via─▶ Writing ─close─▶ Finalized ─install─▶ Installed
    Loaded (hit) ─────────────────────────────────────────────install─▶ Installed

``close`` and ``install`` are idempotent within a session. The record is
only persisted by ``install`` or ``save``, and only if it changed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import Any

from artifactcache.cache.blob_store import BlobStore, BlobWriter
from artifactcache.cache.errors import (
    ReservedFieldError,
    SerializationError,
    StorageError,
    UsageError,
)
from artifactcache.cache.metadata_store import MetadataStore
from artifactcache.cache.models import CacheKey, ReservedField, is_reserved_field
from artifactcache.logging.context import key_context

logger = logging.getLogger(__name__)

_DATA = ReservedField.DATA.value


class CacheEntry:
    """Cache entry for one key, issued by ``Cache.get_entry``."""

    def __init__(
        self,
        key: CacheKey,
        blobs: BlobStore,
        metadata: MetadataStore,
        record: dict[str, Any] | None = None,
    ) -> None:
        self._key = key
        self._blobs = blobs
        self._metadata = metadata
        self._hit = record is not None
        self._record: dict[str, Any] = record if record is not None else {}
        self._writer: BlobWriter | None = None
        self._written = False
        self._dirty = False
        self._session_blob: str | None = None
        self._installed: list[Path] = []

    # --- State ---

    @property
    def key(self) -> CacheKey:
        return self._key

    @property
    def fingerprint(self) -> str:
        return self._key.fingerprint

    @property
    def is_hit(self) -> bool:
        """True if the record was loaded from the metadata store."""
        return self._hit

    @property
    def is_dirty(self) -> bool:
        """True if the record changed since it was loaded or last persisted."""
        return self._dirty

    @property
    def has_data(self) -> bool:
        """True if the record carries a content hash."""
        return _DATA in self._record

    @property
    def content_hash(self) -> str | None:
        return self._record.get(_DATA)

    @property
    def installed_paths(self) -> list[Path]:
        return list(self._installed)

    # --- Record fields ---

    def has(self, *names: str) -> bool:
        """True iff every named field is present."""
        return all(name in self._record for name in names)

    def get(self, name: str, default: Any = None) -> Any:
        return self._record.get(name, default)

    def lookup(self, name: str) -> tuple[Any, bool]:
        """Return ``(value, found)``."""
        if name in self._record:
            return self._record[name], True
        return None, False

    def store(self, name: str, value: Any) -> None:
        """Set a caller field. Names starting with ``_`` are reserved."""
        if not name:
            raise UsageError("entry.store", "field name must not be empty")
        if is_reserved_field(name):
            raise ReservedFieldError(
                "entry.store", f"attempt to set reserved field {name!r}",
                fingerprint=self.fingerprint,
            )
        self._record[name] = value
        self._dirty = True

    # --- Content ---

    def write(self, data: bytes) -> int:
        """Append ``data`` to this entry's blob-in-progress."""
        self._check_writable("entry.write")
        with self._wrap_errors("entry.write"):
            count = self._open_writer().write(data)
        self._written = True
        return count

    def write_via(self, producer: Callable[[Path], None]) -> str:
        """Let ``producer`` fill the entry's temp file by path, then finalize.

        For producers that can only write to a real file (external tools).
        The file is hashed after ``producer`` returns. If ``producer``
        raises, the temp file is discarded and the exception propagates.

        Returns:
            The blob id of the produced content.
        """
        self._check_writable("entry.write_via")
        with self._wrap_errors("entry.write_via"):
            writer = self._open_writer()
            writer.close_stream()

        try:
            producer(writer.path)
        except BaseException:
            self.discard()
            raise

        with self._wrap_errors("entry.write_via"):
            writer.rehash()
        self._written = True
        self.close()
        return self._record[_DATA]

    def close(self) -> None:
        """Finalize written content into the blob store.

        No-op if already finalized this session, if nothing was written and
        the record is unchanged, or if nothing was written and the record
        already carries a content hash.
        """
        if self._session_blob is not None:
            return
        if not self._written and (not self._dirty or self.has_data):
            return

        with key_context("close", self.fingerprint), self._wrap_errors("entry.close"):
            blob_id = self._blobs.finalize(self._open_writer())

        self._session_blob = blob_id
        self._writer = None
        if self._record.get(_DATA) != blob_id:
            self._record[_DATA] = blob_id
            self._dirty = True
        logger.debug("Finalized %s -> %s", self._key, blob_id[:16])

    finalize = close

    def install(self, destination: Path | str) -> Path:
        """Publish the content at ``destination`` and persist a changed record.

        Raises:
            UsageError: The entry has no content (never written, not a hit
                with content).
            StorageError: Publishing or persisting failed.
        """
        dest = Path(destination)
        self.close()

        blob_id = self._record.get(_DATA)
        if not blob_id:
            raise UsageError(
                "entry.install", "entry has no content hash to install",
                fingerprint=self.fingerprint,
            )

        with key_context("install", self.fingerprint), self._wrap_errors("entry.install"):
            if dest not in self._installed:
                self._blobs.publish(blob_id, dest)
                self._installed.append(dest)
            self._persist()

        return dest

    def save(self) -> None:
        """Persist the record without publishing anything.

        Written content is finalized first so the stored hash matches.
        """
        if self._written:
            self.close()
        with key_context("save", self.fingerprint), self._wrap_errors("entry.save"):
            self._persist()

    def discard(self) -> None:
        """Drop unfinalized content. Record fields are kept."""
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        self._written = False
        with self._wrap_errors("entry.discard"):
            writer.discard()

    # --- Context manager ---

    def __enter__(self) -> CacheEntry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None and self._written:
            self.close()
        else:
            self.discard()

    def __repr__(self) -> str:
        state = "hit" if self._hit else "miss"
        return f"CacheEntry({self._key}, {state}, dirty={self._dirty})"

    # --- Internals ---

    def _persist(self) -> None:
        if not self._dirty:
            return
        self._metadata.save(self.fingerprint, self._record)
        self._dirty = False

    def _open_writer(self) -> BlobWriter:
        if self._writer is None:
            self._writer = self._blobs.open_writer()
        return self._writer

    def _check_writable(self, operation: str) -> None:
        if self._session_blob is not None:
            raise UsageError(
                operation, "content already finalized", fingerprint=self.fingerprint
            )

    @contextmanager
    def _wrap_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (StorageError, SerializationError) as exc:
            raise type(exc)(
                operation, exc.message, path=exc.path, fingerprint=self.fingerprint
            ) from exc
