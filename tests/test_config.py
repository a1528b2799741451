"""
Unit tests for configuration management.
"""

import os
from unittest.mock import patch

import pytest

from qualitypilot.config.settings import ConfigManager, Settings, get_config, get_settings


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Test default settings values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.openai_model == "gpt-4o-mini"
        assert settings.browser_kind == "chromium"
        assert settings.browser_headless is True
        assert settings.browser_viewport_width == 1280
        assert settings.browser_viewport_height == 720
        assert settings.step_timeout_ms == 60000
        assert settings.strategy_timeout_ms == 2000
        assert settings.click_settle_ms == 500
        assert settings.navigation_wait_until == "networkidle"
        assert settings.max_concurrent_runs == 3
        assert settings.log_level == "INFO"

    def test_settings_from_env(self):
        """Test loading settings from environment variables."""
        with patch.dict(os.environ, {
            "OPENAI_API_KEY": "test-key-123",
            "BROWSER_KIND": "Firefox",
            "STEP_TIMEOUT_MS": "15000",
            "SCAN_PAGE_BEFORE_GENERATION": "false",
            "LOG_LEVEL": "debug",
        }):
            settings = Settings(_env_file=None)

            assert settings.openai_api_key == "test-key-123"
            assert settings.browser_kind == "firefox"
            assert settings.step_timeout_ms == 15000
            assert settings.scan_page_before_generation is False
            assert settings.log_level == "DEBUG"

    def test_log_level_validation(self):
        """Test log level validation."""
        assert Settings(log_level="warning").log_level == "WARNING"

        with pytest.raises(ValueError, match="Invalid log level"):
            Settings(log_level="INVALID")

    def test_log_format_validation(self):
        """Test log format validation."""
        assert Settings(log_format="json").log_format == "json"

        with pytest.raises(ValueError, match="Invalid log format"):
            Settings(log_format="xml")

    def test_browser_kind_validation(self):
        with pytest.raises(ValueError, match="Invalid browser kind"):
            Settings(browser_kind="netscape")

    def test_navigation_wait_validation(self):
        assert Settings(navigation_wait_until="load").navigation_wait_until == "load"

        with pytest.raises(ValueError, match="Invalid navigation wait state"):
            Settings(navigation_wait_until="idle")

    def test_numeric_validation(self):
        """Test numeric field validation."""
        with pytest.raises(ValueError):
            Settings(step_timeout_ms=10)
        with pytest.raises(ValueError):
            Settings(max_concurrent_runs=0)
        with pytest.raises(ValueError):
            Settings(openai_temperature=3.0)

    def test_create_directories(self, tmp_path):
        """Test directory creation."""
        settings = Settings(
            data_dir=tmp_path / "data",
            screenshots_dir=tmp_path / "data" / "screenshots",
            videos_dir=tmp_path / "data" / "videos",
            persist_screenshots=True,
            record_video=False,
        )

        settings.create_directories()

        assert (tmp_path / "data" / "screenshots").is_dir()
        assert not (tmp_path / "data" / "videos").exists()


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_get(self):
        manager = ConfigManager(Settings(click_settle_ms=250))

        assert manager.get("click_settle_ms") == 250
        assert manager.get("no_such_key", "fallback") == "fallback"

    def test_get_required(self):
        manager = ConfigManager(Settings())

        assert manager.get_required("browser_kind") == "chromium"
        with pytest.raises(KeyError, match="no_such_key"):
            manager.get_required("no_such_key")

    def test_get_all(self):
        values = ConfigManager(Settings()).get_all()

        assert "step_timeout_ms" in values
        assert "openai_api_key" in values


def test_get_settings_cached():
    """Test settings singleton."""
    assert get_settings() is get_settings()


def test_get_config_wraps_cached_settings():
    assert get_config().settings is get_settings()
