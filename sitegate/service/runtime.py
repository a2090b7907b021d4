from __future__ import annotations

import threading
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from sitegate.config import get_settings, reset_settings_cache
from sitegate.logging import get_logger
from sitegate.service.auth import TokenService
from sitegate.service.gate import AvailabilityGate
from sitegate.service.site_settings import SiteSettingsService
from sitegate.signals import settings_changed
from sitegate.storage.memory import MemoryStore
from sitegate.storage.redis_cache import RedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Redis URLs go to the log with the password blanked out."""
    if not url:
        return url
    try:
        parts = urlsplit(url)
        password = parts.password
    except ValueError:
        return "***unparseable-url***"
    if not password:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}:***@{hostinfo}"))


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            app_mode=self.settings.app_mode.value,
            test_mode=self.settings.test_mode,
        )
        self.store = MemoryStore(
            default_site_name=self.settings.default_site_name,
            default_site_description=self.settings.default_site_description,
        )

        self.cache: Optional[RedisCache] = None
        if self.settings.redis_url and not self.settings.test_mode:
            try:
                cache = RedisCache(self.settings.redis_url)
                cache.verify_connection()
                self.cache = cache
            except Exception as exc:
                # Single-worker deployments still work off the in-process store
                logger.warning(
                    "redis_disabled_fallback",
                    redis_url=_mask_url_password(self.settings.redis_url),
                    error=str(exc),
                )

        self.site_settings = SiteSettingsService(
            self.store,
            self.cache,
            cache_ttl_seconds=self.settings.site_settings_cache_ttl_seconds,
            signal=settings_changed,
        )
        self.tokens = TokenService(self.store, self.cache, self.settings)
        self.gate = AvailabilityGate(self.site_settings.get)
        if self.settings.bootstrap_admin_email:
            self.bootstrap_admin(self.settings.bootstrap_admin_email)
        logger.info("runtime_initialized", redis_enabled=self.cache is not None)

    def bootstrap_admin(self, email: str) -> str:
        """Create or promote the configured admin; returns what happened."""
        existing = self.store.get_user_by_email(email)
        if existing and existing.role == "admin":
            return "already_admin"
        if existing:
            self.store.update_user_role(existing.id, "admin")
            logger.info("bootstrap_admin_promoted", user_id=existing.id)
            return "promoted"
        user = self.store.create_user(email, role="admin")
        logger.info("bootstrap_admin_created", user_id=user.id)
        return "created"

    async def close(self) -> None:
        if self.cache is not None:
            await self.cache.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton (double-checked locking)."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
