from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sitegate.logging import get_logger

logger = get_logger(__name__)


class AppMode(str, Enum):
    """Explicit build/runtime mode.

    Placeholder ("mock") credentials are only honoured in DEVELOPMENT. The mode
    is never inferred from hostnames or debug flags.
    """

    PRODUCTION = "production"
    DEVELOPMENT = "development"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


def _load_from_env(model: type[BaseModel]) -> dict[str, str]:
    env_file_values = dotenv_values(".env")
    merged: dict[str, str] = {}
    for name, field in model.model_fields.items():
        extra = field.json_schema_extra or {}
        env_key = extra.get("env") if isinstance(extra, dict) else None
        env_name = env_key or name.upper()
        if env_name in os.environ:
            merged[name] = os.environ[env_name]
        elif env_name in env_file_values:
            merged[name] = env_file_values[env_name]
    return merged


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseModel):
    """Server-side runtime settings for the gate, token service and API."""

    app_mode: AppMode = env_field(AppMode.PRODUCTION, "APP_MODE")
    jwt_secret: str | None = env_field(None, "JWT_SECRET", validate_default=True)
    jwt_issuer: str = env_field("sitegate", "JWT_ISSUER")
    jwt_audience: str = env_field("sitegate-users", "JWT_AUDIENCE")
    access_token_ttl_minutes: int = env_field(
        15, "ACCESS_TOKEN_TTL_MINUTES", ge=1
    )
    refresh_token_ttl_minutes: int = env_field(
        7 * 24 * 60, "REFRESH_TOKEN_TTL_MINUTES", ge=1
    )
    redis_url: str | None = env_field(
        None,
        "REDIS_URL",
        description="Shares the site settings document and refresh denylist across workers",
    )
    site_settings_cache_ttl_seconds: int = env_field(
        5, "SITE_SETTINGS_CACHE_TTL_SECONDS", ge=0
    )
    default_site_name: str = env_field("ITWOS AI Platform", "DEFAULT_SITE_NAME")
    default_site_description: str = env_field(
        "A comprehensive full-stack platform", "DEFAULT_SITE_DESCRIPTION"
    )
    cors_allow_origins: list[str] = env_field([], "CORS_ALLOW_ORIGINS")
    bootstrap_admin_email: str | None = env_field(
        None,
        "BOOTSTRAP_ADMIN_EMAIL",
        description="Create (or promote) this user as admin when the runtime starts",
    )
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Skip external services (Redis) for deterministic test runs.",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(**_load_from_env(cls))

    @property
    def development(self) -> bool:
        return self.app_mode == AppMode.DEVELOPMENT

    @field_validator("app_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _parse_origins(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("jwt_secret")
    @classmethod
    def _ensure_jwt_secret(cls, value: str | None) -> str:
        if not value:
            raise ValueError("JWT_SECRET must be set")
        if len(value) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters")
        return value


DEFAULT_BACKGROUND_ROUTES = [
    "/settings/maintenance-status",
    "/notifications/unread-count",
    "/chat/unread-count",
]


class ClientSettings(BaseModel):
    """Outbound client settings: timeouts, poll cadence and entry points."""

    base_url: str = env_field("http://localhost:7000/api", "SITEGATE_API_URL")
    app_mode: AppMode = env_field(AppMode.PRODUCTION, "APP_MODE")
    request_timeout_seconds: float = env_field(10.0, "REQUEST_TIMEOUT_SECONDS", gt=0)
    refresh_timeout_seconds: float = env_field(5.0, "REFRESH_TIMEOUT_SECONDS", gt=0)
    status_timeout_seconds: float = env_field(3.0, "STATUS_TIMEOUT_SECONDS", gt=0)
    poll_short_interval_seconds: float = env_field(
        5.0, "POLL_SHORT_INTERVAL_SECONDS", gt=0
    )
    poll_long_interval_seconds: float = env_field(
        30.0, "POLL_LONG_INTERVAL_SECONDS", gt=0
    )
    poll_failure_cap: int = env_field(3, "POLL_FAILURE_CAP", ge=1)
    maintenance_view_interval_seconds: float = env_field(
        5.0, "MAINTENANCE_VIEW_INTERVAL_SECONDS", gt=0
    )
    coalesce_refresh: bool = env_field(
        True,
        "COALESCE_REFRESH",
        description="Share one in-flight refresh between requests presenting the same refresh token",
    )
    background_routes: list[str] = env_field(
        list(DEFAULT_BACKGROUND_ROUTES), "BACKGROUND_ROUTES"
    )
    login_path: str = env_field("/login", "LOGIN_PATH")
    admin_login_path: str = env_field("/admin/login", "ADMIN_LOGIN_PATH")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(**_load_from_env(cls))

    @property
    def development(self) -> bool:
        return self.app_mode == AppMode.DEVELOPMENT

    @field_validator("app_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("background_routes", mode="before")
    @classmethod
    def _parse_routes(cls, value: Any) -> Any:
        return _split_csv(value)

    @model_validator(mode="after")
    def _check_timeouts(self) -> "ClientSettings":
        if self.refresh_timeout_seconds >= self.request_timeout_seconds:
            raise ValueError(
                "refresh_timeout_seconds must be shorter than request_timeout_seconds"
            )
        if self.poll_long_interval_seconds < self.poll_short_interval_seconds:
            raise ValueError(
                "poll_long_interval_seconds must not be shorter than poll_short_interval_seconds"
            )
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
