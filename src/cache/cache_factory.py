# src/cache/cache_factory.py — v3
"""Factory for cache instantiation from Settings."""

from __future__ import annotations

from artifactcache.cache.codec import TypeRegistry
from artifactcache.cache.facade import Cache
from artifactcache.config.settings import Settings
from artifactcache.logging.context import set_cache_context


def create_cache(
    settings: Settings | None = None, registry: TypeRegistry | None = None
) -> Cache:
    """Instantiate the cache described by ``settings``.

    Args:
        settings: Application settings. Defaults are used when None.
        registry: Value-type registry for records. Defaults to the
            process-wide registry.

    Returns:
        Configured Cache.
    """
    settings = settings or Settings()
    root = settings.cache_root_path
    set_cache_context(str(root))
    return Cache(
        root,
        temp_prefix=settings.cache_temp_prefix,
        blob_mode=settings.cache_blob_mode,
        dir_mode=settings.cache_dir_mode,
        registry=registry,
        lock_enabled=settings.cache_lock_enabled,
    )
