# src/__init__.py — v1
"""artifactcache — content-addressed cache for memoizing deterministic transformations."""

from artifactcache.cache.codec import TypeRegistry, register_value_type
from artifactcache.cache.entry import CacheEntry
from artifactcache.cache.errors import (
    CacheError,
    ReservedFieldError,
    SerializationError,
    StorageError,
    UsageError,
)
from artifactcache.cache.facade import Cache
from artifactcache.cache.models import CacheKey, ReservedField
from artifactcache.version import __version__

__all__ = [
    "Cache",
    "CacheEntry",
    "CacheError",
    "CacheKey",
    "ReservedField",
    "ReservedFieldError",
    "SerializationError",
    "StorageError",
    "TypeRegistry",
    "UsageError",
    "__version__",
    "register_value_type",
]
