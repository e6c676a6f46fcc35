# src/cache/locking.py — v1
"""Optional advisory per-fingerprint locks.

By default the cache does not coordinate producers: two processes asking for
the same missing key both compute it, and the atomic renames make the
duplicate harmless. Callers that want to avoid the duplicate work can hold
``Cache.lock(key)`` around compute-and-install when locking is enabled.
The lock is a POSIX ``flock`` on ``<root>/locks/<fingerprint>.lock``; it
only coordinates callers that also take it.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

from artifactcache.cache.errors import StorageError

logger = logging.getLogger(__name__)

LOCKS_DIR = "locks"


class FingerprintLock:
    """Exclusive advisory lock for one fingerprint."""

    def __init__(self, root: Path | str, fingerprint: str, *, dir_mode: int = 0o700) -> None:
        self._dir = Path(root) / LOCKS_DIR
        self._path = self._dir / f"{fingerprint}.lock"
        self._dir_mode = dir_mode
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self, blocking: bool = True) -> bool:
        """Take the lock. Returns False if ``blocking`` is off and it is busy."""
        if self._fd is not None:
            raise StorageError("lock.acquire", "lock already held", path=str(self._path))
        try:
            self._dir.mkdir(mode=self._dir_mode, parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as exc:
            raise StorageError("lock.open", str(exc), path=str(self._path)) from exc

        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fd, flags)
        except BlockingIOError:
            os.close(fd)
            return False
        except OSError as exc:
            os.close(fd)
            raise StorageError("lock.flock", str(exc), path=str(self._path)) from exc

        self._fd = fd
        logger.debug("Acquired lock %s", self._path.name[:16])
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def __enter__(self) -> FingerprintLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class NullLock:
    """Stand-in used when locking is disabled."""

    held = False

    def acquire(self, blocking: bool = True) -> bool:
        return True

    def release(self) -> None:
        return None

    def __enter__(self) -> NullLock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None
