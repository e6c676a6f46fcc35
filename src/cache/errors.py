# src/cache/errors.py — v1
"""Cache error taxonomy.

Every error carries the name of the operation that failed. Errors raised
while handling another CacheError chain through ``__cause__``, and
``CacheError.context`` renders that chain as ``outer:inner:innermost``.

A missing metadata record is not an error: ``MetadataStore.load`` returns
``None`` for it.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base class for all cache failures."""

    def __init__(
        self,
        operation: str,
        message: str = "",
        *,
        path: str | None = None,
        fingerprint: str | None = None,
    ) -> None:
        self.operation = operation
        self.message = message
        self.path = path
        self.fingerprint = fingerprint
        super().__init__(self._render())

    def _render(self) -> str:
        parts = [self.operation]
        if self.path:
            parts.append(f"path={self.path}")
        if self.fingerprint:
            parts.append(f"fingerprint={self.fingerprint[:16]}")
        head = " ".join(parts)
        return f"{head}: {self.message}" if self.message else head

    @property
    def context(self) -> str:
        """Colon-separated chain of operations down to the root cause."""
        chain = [self.operation]
        cause = self.__cause__
        while isinstance(cause, CacheError):
            chain.append(cause.operation)
            cause = cause.__cause__
        return ":".join(chain)


class StorageError(CacheError):
    """File I/O failure inside the blob or metadata store."""


class UsageError(CacheError):
    """The calling code broke the cache entry contract."""


class ReservedFieldError(UsageError):
    """Attempt to set a field in the reserved namespace."""


class SerializationError(CacheError):
    """A record could not be encoded or decoded."""


class RegistryError(UsageError):
    """Invalid value-type registration."""
