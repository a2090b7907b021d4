"""Configuration loading and validation."""

import pytest
from pydantic import ValidationError

from sitegate.config import AppMode, ClientSettings, Settings, get_settings, reset_settings_cache

SECRET = "x" * 32


class TestSettings:
    def test_jwt_secret_required(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        with pytest.raises(ValidationError):
            Settings()

    def test_short_jwt_secret_rejected(self):
        with pytest.raises(ValidationError):
            Settings(jwt_secret="short")

    def test_mode_is_explicit_and_case_insensitive(self):
        assert Settings(jwt_secret=SECRET).app_mode == AppMode.PRODUCTION
        settings = Settings(jwt_secret=SECRET, app_mode=" Development ")
        assert settings.development is True

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            Settings(jwt_secret=SECRET, app_mode="staging")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("DEFAULT_SITE_NAME", "Bazaar")
        monkeypatch.setenv("SITE_SETTINGS_CACHE_TTL_SECONDS", "9")
        settings = Settings.from_env()
        assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
        assert settings.default_site_name == "Bazaar"
        assert settings.site_settings_cache_ttl_seconds == 9

    def test_settings_cache_reset(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first
        monkeypatch.setenv("DEFAULT_SITE_NAME", "Renamed")
        reset_settings_cache()
        assert get_settings().default_site_name == "Renamed"
        reset_settings_cache()

    def test_declared_fields(self):
        assert set(Settings.model_fields) == {
            "app_mode",
            "jwt_secret",
            "jwt_issuer",
            "jwt_audience",
            "access_token_ttl_minutes",
            "refresh_token_ttl_minutes",
            "redis_url",
            "site_settings_cache_ttl_seconds",
            "default_site_name",
            "default_site_description",
            "cors_allow_origins",
            "bootstrap_admin_email",
            "test_mode",
        }


class TestClientSettings:
    def test_defaults(self):
        settings = ClientSettings()
        assert settings.base_url == "http://localhost:7000/api"
        assert settings.refresh_timeout_seconds < settings.request_timeout_seconds
        assert settings.poll_failure_cap == 3
        assert "/settings/maintenance-status" in settings.background_routes
        assert settings.coalesce_refresh is True

    def test_refresh_timeout_must_be_shorter(self):
        with pytest.raises(ValidationError):
            ClientSettings(request_timeout_seconds=5, refresh_timeout_seconds=5)

    def test_long_interval_not_shorter_than_short(self):
        with pytest.raises(ValidationError):
            ClientSettings(poll_short_interval_seconds=10, poll_long_interval_seconds=5)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SITEGATE_API_URL", "https://api.example.com/api")
        monkeypatch.setenv("BACKGROUND_ROUTES", "/settings/maintenance-status,/inbox/count")
        monkeypatch.setenv("COALESCE_REFRESH", "false")
        settings = ClientSettings.from_env()
        assert settings.base_url == "https://api.example.com/api"
        assert settings.background_routes == ["/settings/maintenance-status", "/inbox/count"]
        assert settings.coalesce_refresh is False
