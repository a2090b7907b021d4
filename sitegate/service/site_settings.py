from __future__ import annotations

from typing import Any, Dict, Optional

from sitegate.logging import get_logger
from sitegate.signals import SettingsChangedSignal
from sitegate.storage.memory import MemoryStore
from sitegate.storage.models import SiteSettings
from sitegate.storage.redis_cache import RedisCache

logger = get_logger(__name__)


class SiteSettingsService:
    """Get-or-create access to the availability singleton.

    Reads go through the Redis document cache when one is configured so every
    worker sees the same maintenance flag; a cache failure falls back to the
    store. Store failures propagate; the gate decides what to do with them.
    """

    def __init__(
        self,
        store: MemoryStore,
        cache: Optional[RedisCache] = None,
        *,
        cache_ttl_seconds: int = 5,
        signal: Optional[SettingsChangedSignal] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.signal = signal

    async def get(self) -> SiteSettings:
        if self.cache:
            try:
                cached = await self.cache.get_site_settings()
                if cached:
                    return SiteSettings.from_dict(cached)
            except Exception as exc:
                logger.warning("site_settings_cache_read_failed", error=str(exc))
        settings = self.store.get_or_create_site_settings()
        if self.cache:
            try:
                await self.cache.set_site_settings(settings.to_dict(), self.cache_ttl_seconds)
            except Exception as exc:
                logger.warning("site_settings_cache_write_failed", error=str(exc))
        return settings

    async def update(
        self, changes: Dict[str, Any], *, updated_by: Optional[str] = None
    ) -> SiteSettings:
        before = self.store.get_or_create_site_settings()
        updated = self.store.update_site_settings(changes, updated_by=updated_by)
        if self.cache:
            try:
                await self.cache.invalidate_site_settings()
            except Exception as exc:
                logger.warning("site_settings_cache_invalidate_failed", error=str(exc))
        if before.maintenance_mode != updated.maintenance_mode:
            logger.info(
                "maintenance_mode_changed",
                maintenance_mode=updated.maintenance_mode,
                updated_by=updated_by,
            )
        if self.signal:
            self.signal.emit({"maintenanceMode": updated.maintenance_mode})
        return updated
