# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from artifactcache.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_cache(self):
        s = Settings(_env_file=None)
        assert s.cache_root == Path("~/.artifactcache")
        assert s.cache_temp_prefix == "artifactcache-"
        assert s.cache_dir_mode == 0o700
        assert s.cache_blob_mode == 0o400

    def test_default_lock_disabled(self):
        s = Settings(_env_file=None)
        assert s.cache_lock_enabled is False

    def test_default_logging(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "json"
        assert s.log_file is None

    def test_cache_root_path_expanded(self):
        s = Settings(_env_file=None)
        assert s.cache_root_path == Path("~/.artifactcache").expanduser()


class TestSettingsValidation:
    def test_writable_blob_mode(self):
        with pytest.raises(ConfigurationError, match="CACHE_BLOB_MODE"):
            Settings(_env_file=None, cache_blob_mode=0o644)

    def test_dir_mode_without_owner_rwx(self):
        with pytest.raises(ConfigurationError, match="CACHE_DIR_MODE"):
            Settings(_env_file=None, cache_dir_mode=0o500)

    def test_mode_out_of_range(self):
        with pytest.raises(ValueError, match="permission mode"):
            Settings(_env_file=None, cache_dir_mode=0o1777)

    def test_prefix_with_separator(self):
        with pytest.raises(ConfigurationError, match="CACHE_TEMP_PREFIX"):
            Settings(_env_file=None, cache_temp_prefix="../tmp-")

    def test_empty_prefix(self):
        with pytest.raises(ConfigurationError, match="CACHE_TEMP_PREFIX"):
            Settings(_env_file=None, cache_temp_prefix="")

    def test_bad_rotation(self):
        with pytest.raises(ConfigurationError, match="LOG_ROTATION"):
            Settings(_env_file=None, log_rotation="huge")

    def test_negative_retention(self):
        with pytest.raises(ValueError, match="log_retention"):
            Settings(_env_file=None, log_retention=-1)

    def test_errors_are_joined(self):
        with pytest.raises(ConfigurationError, match="CACHE_BLOB_MODE.*; CACHE_TEMP_PREFIX"):
            Settings(_env_file=None, cache_blob_mode=0o600, cache_temp_prefix="")

    def test_valid_readable_blob_mode(self):
        s = Settings(_env_file=None, cache_blob_mode=0o444)
        assert s.cache_blob_mode == 0o444


class TestSettingsEnvironment:
    def test_env_vars(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CACHE_ROOT", str(tmp_path))
        monkeypatch.setenv("CACHE_LOCK_ENABLED", "true")
        s = Settings(_env_file=None)
        assert s.cache_root == tmp_path
        assert s.cache_lock_enabled is True

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("LOG_LEVEL=DEBUG\nLOG_FORMAT=text\nUNRELATED=1\n", encoding="utf-8")
        s = Settings(_env_file=env)
        assert s.log_level == "DEBUG"
        assert s.log_format == "text"


class TestLoadSettings:
    def test_with_overrides(self):
        s = load_settings(log_level="DEBUG", cache_lock_enabled=True)
        assert s.log_level == "DEBUG"
        assert s.cache_lock_enabled is True
