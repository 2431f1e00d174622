"""Tests for constants module.

Tests default values, settings validation and the settings cache.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pydantic import ValidationError

from agentwire.core.constants import (
    CLEANUP_GRACE_PERIOD,
    CONNECTION_DELAY,
    CONNECTION_TIMEOUT,
    DEDUP_WINDOW_SIZE,
    MAX_CONNECTION_FAILURES,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    TIMESTAMP_FIELDS,
    Settings,
    clear_settings_cache,
    get_settings,
    reload_settings,
)


class TestConstants:
    """Tests for module constants."""

    def test_transport_defaults(self) -> None:
        """Test reconnect defaults."""
        assert RECONNECT_BASE_DELAY == 1.0
        assert RECONNECT_MAX_DELAY == 30.0
        assert MAX_RECONNECT_ATTEMPTS == 5

    def test_orchestration_defaults(self) -> None:
        """Test orchestrator defaults."""
        assert CONNECTION_DELAY == 2.0
        assert CONNECTION_TIMEOUT == 10.0
        assert MAX_CONNECTION_FAILURES == 3
        assert CLEANUP_GRACE_PERIOD == 0.1

    def test_dedup_window_default(self) -> None:
        """Test the dedup window cap."""
        assert DEDUP_WINDOW_SIZE == 100

    def test_timestamp_field_priority(self) -> None:
        """Test timestamp fields are probed in the documented order."""
        assert TIMESTAMP_FIELDS == ("timestamp", "created_at", "createdAt", "time", "sent_at", "sentAt")


class TestSettings:
    """Tests for Settings validation."""

    def test_defaults(self) -> None:
        """Test settings work without any configuration."""
        settings = Settings()

        assert settings.app_env == "test"
        assert settings.ws_base_url == "ws://localhost:8000"
        assert settings.auth_token is None
        assert settings.log_dir is None
        assert settings.enable_content_logging is False
        assert settings.ws_max_reconnect_attempts == MAX_RECONNECT_ATTEMPTS
        assert settings.connection_delay == CONNECTION_DELAY
        assert settings.is_test is True
        assert settings.is_production is False

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables override defaults."""
        monkeypatch.setenv("WS_BASE_URL", "wss://chat.example.com/")
        monkeypatch.setenv("WS_MAX_RECONNECT_ATTEMPTS", "7")
        monkeypatch.setenv("CONNECTION_TIMEOUT", "2.5")
        monkeypatch.setenv("LOG_DIR", "/tmp/agentwire-logs")

        settings = Settings()

        assert settings.ws_base_url == "wss://chat.example.com"
        assert settings.ws_max_reconnect_attempts == 7
        assert settings.connection_timeout == 2.5
        assert settings.log_dir == Path("/tmp/agentwire-logs")

    def test_app_env_normalized(self) -> None:
        """Test APP_ENV is case-insensitive."""
        assert Settings(app_env="PRODUCTION").app_env == "production"

    def test_invalid_app_env(self) -> None:
        """Test unknown environments are rejected."""
        with pytest.raises(ValidationError):
            Settings(app_env="staging")

    def test_invalid_base_url_scheme(self) -> None:
        """Test only ws(s) and http(s) bases are accepted."""
        with pytest.raises(ValidationError):
            Settings(ws_base_url="ftp://example.com")

    def test_negative_delay_rejected(self) -> None:
        """Test delays cannot be negative."""
        with pytest.raises(ValidationError):
            Settings(connection_delay=-1)
        with pytest.raises(ValidationError):
            Settings(ws_reconnect_base_delay=-0.5)

    def test_non_positive_limits_rejected(self) -> None:
        """Test limits must be at least one."""
        with pytest.raises(ValidationError):
            Settings(max_connection_failures=0)
        with pytest.raises(ValidationError):
            Settings(dedup_window_size=0)


class TestGetSettings:
    """Tests for the cached settings accessors."""

    def test_get_settings_caching(self) -> None:
        """Test that settings are cached."""
        assert get_settings() is get_settings()

    def test_cached_instance_ignores_later_env_changes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the cache only refreshes through reload or clear."""
        first = get_settings()
        monkeypatch.setenv("DEDUP_WINDOW_SIZE", "42")

        assert get_settings() is first
        assert get_settings().dedup_window_size == first.dedup_window_size
        assert "config_hot_reload" not in Settings.model_fields

    def test_clear_settings_cache(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test clearing the cache picks up new environment values."""
        first = get_settings()
        monkeypatch.setenv("AUTH_TOKEN", "secret")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.auth_token == "secret"

    def test_reload_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test reload replaces the cached instance."""
        get_settings()
        monkeypatch.setenv("DEDUP_WINDOW_SIZE", "20")

        reloaded = reload_settings()

        assert reloaded.dedup_window_size == 20
        assert get_settings() is reloaded
