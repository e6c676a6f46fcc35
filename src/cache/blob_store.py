# src/cache/blob_store.py — v2
"""Immutable content-addressed blob storage.

Blobs live in a single directory and are named by the hex SHA-512 of their
bytes. Content is streamed into a private temp file in the same directory
while a running hash is kept; finalizing renames the temp file onto its
digest name and drops the write bits. Two writers producing the same bytes
rename onto the same name, which is how identical content is stored once.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from artifactcache.cache.errors import StorageError, UsageError
from artifactcache.cache.fingerprint import is_fingerprint

logger = logging.getLogger(__name__)

FILES_DIR = "files"
DEFAULT_TEMP_PREFIX = "artifactcache-"
DEFAULT_BLOB_MODE = 0o400
DEFAULT_DIR_MODE = 0o700
_READ_CHUNK = 1 << 16

# os.link errors meaning a hard link cannot exist here; anything else is fatal.
_SYMLINK_FALLBACK_ERRNOS = frozenset(
    {errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP, errno.EOPNOTSUPP}
)


class BlobWriter:
    """Handle on one blob being written.

    Created by ``BlobStore.open_writer``. Every ``write`` goes to the temp
    file and the hash accumulator in the same call.
    """

    def __init__(self, path: Path, stream: BinaryIO) -> None:
        self._path = path
        self._stream: BinaryIO | None = stream
        self._hash = hashlib.sha512()
        self._blob_id: str | None = None
        self._discarded = False

    @property
    def path(self) -> Path:
        """Path of the temp file while unfinalized."""
        return self._path

    @property
    def digest(self) -> str:
        """Hex digest of everything written so far."""
        return self._hash.hexdigest()

    @property
    def blob_id(self) -> str | None:
        """Blob id once finalized, else None."""
        return self._blob_id

    @property
    def closed(self) -> bool:
        return self._stream is None

    def write(self, data: bytes) -> int:
        """Append ``data`` to the temp file and the running hash."""
        if self._blob_id is not None or self._discarded:
            raise UsageError("blob.write", "writer is no longer open", path=str(self._path))
        if self._stream is None:
            self._reopen()
        try:
            written = self._stream.write(data)
        except OSError as exc:
            raise StorageError("blob.write", str(exc), path=str(self._path)) from exc
        self._hash.update(data)
        return written

    def close_stream(self) -> None:
        """Flush and close the temp file, keeping it on disk."""
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.close()
        except OSError as exc:
            raise StorageError("blob.close", str(exc), path=str(self._path)) from exc

    def rehash(self) -> str:
        """Recompute the hash from the temp file's current content.

        Used after an external producer has written the file by path.
        """
        self.close_stream()
        h = hashlib.sha512()
        try:
            with open(self._path, "rb") as f:
                for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
                    h.update(chunk)
        except OSError as exc:
            raise StorageError("blob.rehash", str(exc), path=str(self._path)) from exc
        self._hash = h
        return self.digest

    def discard(self) -> None:
        """Close and delete the temp file. No-op once finalized."""
        if self._blob_id is not None or self._discarded:
            return
        self._discarded = True
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError("blob.discard", str(exc), path=str(self._path)) from exc

    def mark_finalized(self, blob_id: str) -> None:
        self._blob_id = blob_id

    def _reopen(self) -> None:
        try:
            self._stream = open(self._path, "ab")
        except OSError as exc:
            raise StorageError("blob.open", str(exc), path=str(self._path)) from exc


class BlobStore:
    """Content-addressed blobs under ``<root>/files``."""

    def __init__(
        self,
        root: Path | str,
        *,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
        blob_mode: int = DEFAULT_BLOB_MODE,
        dir_mode: int = DEFAULT_DIR_MODE,
    ) -> None:
        self._dir = Path(root) / FILES_DIR
        self._temp_prefix = temp_prefix
        self._blob_mode = blob_mode
        self._dir_mode = dir_mode

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, blob_id: str) -> Path:
        """Return the storage path of ``blob_id``."""
        if not is_fingerprint(blob_id):
            raise UsageError("blob.path", f"invalid blob id {blob_id!r:.40}")
        return self._dir / blob_id

    def contains(self, blob_id: str) -> bool:
        return self.path_for(blob_id).is_file()

    def read_bytes(self, blob_id: str) -> bytes:
        path = self.path_for(blob_id)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError("blob.read", str(exc), path=str(path)) from exc

    def open_writer(self) -> BlobWriter:
        """Create a temp file in the store and return a writer for it."""
        self._ensure_dir()
        try:
            fd, name = tempfile.mkstemp(prefix=self._temp_prefix, dir=self._dir)
        except OSError as exc:
            raise StorageError("blob.mkstemp", str(exc), path=str(self._dir)) from exc
        stream = os.fdopen(fd, "wb")
        return BlobWriter(Path(name), stream)

    def finalize(self, writer: BlobWriter) -> str:
        """Move the writer's temp file onto its digest name.

        Returns the blob id. Finalizing the same writer again returns the
        same id without touching the store.
        """
        if writer.blob_id is not None:
            return writer.blob_id

        writer.close_stream()
        blob_id = writer.digest
        target = self._dir / blob_id

        try:
            os.replace(writer.path, target)
        except OSError as exc:
            raise StorageError("blob.rename", str(exc), path=str(target)) from exc
        try:
            os.chmod(target, self._blob_mode)
        except OSError as exc:
            raise StorageError("blob.chmod", str(exc), path=str(target)) from exc

        writer.mark_finalized(blob_id)
        logger.debug("Finalized blob %s", blob_id[:16])
        return blob_id

    def publish(self, blob_id: str, destination: Path | str) -> Path:
        """Make ``blob_id`` visible at ``destination``.

        A hard link is tried first; if the link cannot be made (cross-device,
        unsupported filesystem, link limit) a symlink to the absolute blob
        path is made instead. Never copies.

        Raises:
            StorageError: The blob is missing, or neither link can be made.
        """
        source = self.path_for(blob_id).absolute()
        dest = Path(destination)

        if not source.is_file():
            raise StorageError(
                "blob.publish", f"blob {blob_id[:16]} is missing", path=str(source)
            )
        if _same_file(source, dest):
            return dest

        try:
            os.link(source, dest)
            return dest
        except OSError as exc:
            if exc.errno not in _SYMLINK_FALLBACK_ERRNOS:
                raise StorageError("blob.link", str(exc), path=str(dest)) from exc
            logger.info("Hard link to %s failed (%s), falling back to symlink", dest, exc)

        try:
            os.symlink(source, dest)
        except OSError as exc:
            raise StorageError("blob.symlink", str(exc), path=str(dest)) from exc
        return dest

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(mode=self._dir_mode, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError("blob.mkdir", str(exc), path=str(self._dir)) from exc


def _same_file(source: Path, dest: Path) -> bool:
    try:
        return os.path.samefile(source, dest)
    except OSError:
        return False
