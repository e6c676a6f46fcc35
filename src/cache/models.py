# src/cache/models.py — v2
"""Cache domain models: CacheKey and reserved record fields."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from artifactcache.cache.fingerprint import derive_fingerprint

RESERVED_PREFIX = "_"


class ReservedField(str, Enum):
    """Record fields owned by the cache itself."""

    DATA = "_DATA_"


def is_reserved_field(name: str) -> bool:
    """True if ``name`` belongs to the reserved namespace."""
    return name.startswith(RESERVED_PREFIX)


class CacheKey(BaseModel):
    """Identity of one cached computation.

    The fingerprint covers the operation name and the subjects in the order
    given. It is derived on first access and kept for the key's lifetime.

    Only what the caller puts into the subjects is part of the key. File
    size, modification time and content of the subjects are not looked at,
    so a caller whose inputs can change must encode that into the subjects.
    """

    model_config = ConfigDict(frozen=True)

    operation: str = Field(description="Logical operation tag (e.g. 'mockFile')")
    subjects: tuple[str, ...] = Field(
        default=(), description="Ordered subject identifiers, usually paths"
    )

    _fingerprint: str | None = PrivateAttr(default=None)

    @field_validator("operation")
    @classmethod
    def validate_operation(cls, v: str) -> str:
        if not v:
            raise ValueError("operation must not be empty")
        return v

    @property
    def fingerprint(self) -> str:
        """128-char lowercase hex SHA-512 of the key."""
        if self._fingerprint is None:
            self._fingerprint = derive_fingerprint(self.operation, self.subjects)
        return self._fingerprint

    def __str__(self) -> str:
        return f"{self.operation}:{self.fingerprint[:12]}"
