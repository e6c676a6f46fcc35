# src/logging/context.py — v2
"""Contextual logging support — attach cache operation and fingerprint to log records."""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per cache entry operation.
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_cache_root: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "cache_root", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    operation: str | None = None
    fingerprint: str | None = None
    cache_root: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        operation=_operation.get(),
        fingerprint=_fingerprint.get(),
        cache_root=_cache_root.get(),
    )


def set_cache_context(cache_root: str) -> None:
    """Set the cache root reported with every record."""
    _cache_root.set(cache_root)


@contextmanager
def key_context(operation: str, fingerprint: str) -> Iterator[LogContext]:
    """Report ``operation`` and a short ``fingerprint`` for the block's duration."""
    op_token = _operation.set(operation)
    fp_token = _fingerprint.set(fingerprint[:16])
    try:
        yield get_context()
    finally:
        _fingerprint.reset(fp_token)
        _operation.reset(op_token)


def clear_context() -> None:
    """Reset all context variables."""
    _operation.set(None)
    _fingerprint.set(None)
    _cache_root.set(None)
