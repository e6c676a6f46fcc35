# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for cache location, on-disk permissions, optional
locking and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from artifactcache.logging.handlers import parse_size


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache ===
    cache_root: Path = Path("~/.artifactcache")
    cache_temp_prefix: str = "artifactcache-"
    cache_dir_mode: int = 0o700
    cache_blob_mode: int = 0o400
    cache_lock_enabled: bool = False

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("cache_dir_mode", "cache_blob_mode")
    @classmethod
    def validate_mode(cls, v: int) -> int:
        if not 0 <= v <= 0o777:
            raise ValueError(f"permission mode out of range: {v:o}")
        return v

    @field_validator("log_retention")
    @classmethod
    def validate_retention(cls, v: int) -> int:
        if v < 0:
            raise ValueError("log_retention must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_blob_mode & 0o222:
            errors.append("CACHE_BLOB_MODE must not grant write permission")

        if self.cache_dir_mode & 0o700 != 0o700:
            errors.append("CACHE_DIR_MODE must give the owner rwx")

        prefix = self.cache_temp_prefix
        if not prefix or "/" in prefix or "\\" in prefix:
            errors.append("CACHE_TEMP_PREFIX must be a non-empty file name prefix")

        try:
            parse_size(self.log_rotation)
        except ValueError as exc:
            errors.append(f"LOG_ROTATION: {exc}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_root_path(self) -> Path:
        """Cache root with ``~`` expanded."""
        return self.cache_root.expanduser()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding callers).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
