# src/cache/facade.py — v1
"""Cache façade — owns the root directory layout and issues entries.

Usage::

    cache = Cache("/var/cache/tool")
    key = cache.make_key("render", "/src/a.tmpl")
    entry = cache.get_entry(key)
    if not entry.has_data:
        entry.write(render("/src/a.tmpl"))
        entry.store("deps", ["b.tmpl"])
    entry.install("/out/a.html")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from artifactcache.cache.blob_store import (
    DEFAULT_BLOB_MODE,
    DEFAULT_DIR_MODE,
    DEFAULT_TEMP_PREFIX,
    BlobStore,
)
from artifactcache.cache.codec import RecordCodec, TypeRegistry
from artifactcache.cache.entry import CacheEntry
from artifactcache.cache.errors import SerializationError, StorageError
from artifactcache.cache.locking import FingerprintLock, NullLock
from artifactcache.cache.metadata_store import MetadataStore
from artifactcache.cache.models import CacheKey
from artifactcache.logging.context import key_context

logger = logging.getLogger(__name__)


class Cache:
    """Content-addressed artifact cache rooted at one directory."""

    def __init__(
        self,
        root: Path | str,
        *,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
        blob_mode: int = DEFAULT_BLOB_MODE,
        dir_mode: int = DEFAULT_DIR_MODE,
        registry: TypeRegistry | None = None,
        lock_enabled: bool = False,
    ) -> None:
        self._root = Path(root)
        self._dir_mode = dir_mode
        self._lock_enabled = lock_enabled
        self._blobs = BlobStore(
            self._root, temp_prefix=temp_prefix, blob_mode=blob_mode, dir_mode=dir_mode
        )
        self._metadata = MetadataStore(
            self._root,
            codec=RecordCodec(registry),
            temp_prefix=temp_prefix,
            dir_mode=dir_mode,
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    @property
    def metadata(self) -> MetadataStore:
        return self._metadata

    @staticmethod
    def make_key(operation: str, *subjects: str | os.PathLike[str]) -> CacheKey:
        """Build a key; subjects keep the order given."""
        return CacheKey(operation=operation, subjects=tuple(os.fspath(s) for s in subjects))

    def get_entry(self, key: CacheKey) -> CacheEntry:
        """Return a loaded entry on hit, a fresh one on miss.

        Raises:
            StorageError: The record exists but cannot be read.
            SerializationError: The record cannot be decoded.
        """
        with key_context(key.operation, key.fingerprint):
            try:
                record = self._metadata.load(key.fingerprint)
            except (StorageError, SerializationError) as exc:
                raise type(exc)(
                    "get_entry",
                    f"{key.operation}: {exc.message}",
                    path=exc.path,
                    fingerprint=key.fingerprint,
                ) from exc

            if record is None:
                logger.debug("Cache miss for %s", key)
                return CacheEntry(key, self._blobs, self._metadata)

            logger.debug("Cache hit for %s", key)
            return CacheEntry(key, self._blobs, self._metadata, record=record)

    def lock(self, key: CacheKey) -> FingerprintLock | NullLock:
        """Advisory lock for ``key``; a no-op unless locking is enabled."""
        if not self._lock_enabled:
            return NullLock()
        return FingerprintLock(self._root, key.fingerprint, dir_mode=self._dir_mode)
