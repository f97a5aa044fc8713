"""
Tests for centralized configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest
from pydantic import ValidationError

from killlog_sync.core.config import (
    KilllogSettings,
    get_settings,
    is_retry_disabled,
    reset_settings,
)


class TestKilllogSettings:
    """Test KilllogSettings class."""

    def test_default_values(self):
        """Test that default values are correct."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = KilllogSettings()

            assert settings.log_level == "WARNING"
            assert settings.debug is False
            assert settings.log_json is False
            assert settings.no_retry is False
            assert settings.api_base_url == "https://api.eveonline.com"
            assert settings.api_timeout == 30.0
            assert settings.fetches_per_second == 30
            assert settings.shard_lock_timeout == 60.0
            assert settings.cycle_interval == 60.0

    def test_log_level_case_insensitive(self):
        """Test log level is case-insensitive."""
        with mock.patch.dict(os.environ, {"KILLLOG_LOG_LEVEL": "debug"}, clear=True):
            settings = KilllogSettings()
            assert settings.log_level == "DEBUG"

    def test_debug_legacy_flag(self):
        """Test legacy KILLLOG_DEBUG flag enables debug mode."""
        with mock.patch.dict(os.environ, {"KILLLOG_DEBUG": "1"}, clear=True):
            settings = KilllogSettings()
            assert settings.debug is True
            assert settings.effective_log_level == "DEBUG"

    def test_debug_legacy_does_not_override_explicit_level(self):
        """Test explicit log level takes precedence over KILLLOG_DEBUG."""
        env = {"KILLLOG_LOG_LEVEL": "ERROR", "KILLLOG_DEBUG": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = KilllogSettings()
            assert settings.effective_log_level == "ERROR"

    def test_invalid_log_level_rejected(self):
        with mock.patch.dict(os.environ, {"KILLLOG_LOG_LEVEL": "LOUD"}, clear=True):
            with pytest.raises(ValidationError):
                KilllogSettings()

    def test_fetches_per_second_must_be_positive(self):
        with mock.patch.dict(os.environ, {"KILLLOG_FETCHES_PER_SECOND": "0"}, clear=True):
            with pytest.raises(ValidationError):
                KilllogSettings()

    def test_base_url_trailing_slash_stripped(self):
        env = {"KILLLOG_API_BASE_URL": "https://api.example.test/"}
        with mock.patch.dict(os.environ, env, clear=True):
            assert KilllogSettings().api_base_url == "https://api.example.test"

    def test_db_path_under_instance_root(self, tmp_path: Path):
        """Test the database lives in {instance_root}/cache."""
        with mock.patch.dict(os.environ, {"KILLLOG_INSTANCE_ROOT": str(tmp_path)}, clear=True):
            settings = KilllogSettings()
            assert settings.cache_dir == tmp_path / "cache"
            assert settings.db_path == tmp_path / "cache" / "killlog.db"


class TestSettingsSingleton:
    """Test get_settings caching."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_reloads_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("KILLLOG_FETCHES_PER_SECOND", "7")
        reset_settings()
        assert get_settings().fetches_per_second == 7

        monkeypatch.setenv("KILLLOG_FETCHES_PER_SECOND", "9")
        assert get_settings().fetches_per_second == 7

        reset_settings()
        assert get_settings().fetches_per_second == 9

    def test_convenience_functions(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("KILLLOG_NO_RETRY", "true")
        reset_settings()

        assert is_retry_disabled() is True
