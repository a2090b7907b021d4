"""Tests for the site settings singleton, its cache and the change signal."""

import pytest

from sitegate.service.site_settings import SiteSettingsService
from sitegate.signals import SettingsChangedSignal
from sitegate.storage.memory import MemoryStore
from sitegate.storage.models import SiteSettings


class FakeCache:
    def __init__(self, *, fail=False):
        self.doc = None
        self.fail = fail
        self.invalidations = 0

    async def get_site_settings(self):
        if self.fail:
            raise ConnectionError("redis down")
        return self.doc

    async def set_site_settings(self, doc, ttl):
        if self.fail:
            raise ConnectionError("redis down")
        self.doc = doc

    async def invalidate_site_settings(self):
        if self.fail:
            raise ConnectionError("redis down")
        self.invalidations += 1
        self.doc = None


class TestMemoryStoreSingleton:
    def test_get_or_create_uses_defaults_once(self):
        store = MemoryStore(default_site_name="Bazaar", default_site_description="Trade")
        first = store.get_or_create_site_settings()
        second = store.get_or_create_site_settings()
        assert first.site_name == "Bazaar"
        assert first.maintenance_mode is False
        assert first.updated_at == second.updated_at

    def test_returned_copy_is_detached(self):
        store = MemoryStore()
        settings = store.get_or_create_site_settings()
        settings.maintenance_mode = True
        assert store.get_or_create_site_settings().maintenance_mode is False

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError):
            MemoryStore().update_site_settings({"theme": "dark"})


class TestSiteSettingsService:
    async def test_read_through_cache(self):
        store = MemoryStore()
        cache = FakeCache()
        service = SiteSettingsService(store, cache)

        first = await service.get()
        assert cache.doc["maintenance_mode"] is False

        cache.doc = SiteSettings(maintenance_mode=True).to_dict()
        assert (await service.get()).maintenance_mode is True
        assert first.maintenance_mode is False

    async def test_cache_failure_falls_back_to_store(self):
        service = SiteSettingsService(MemoryStore(), FakeCache(fail=True))
        settings = await service.get()
        assert settings.maintenance_mode is False

    async def test_update_invalidates_and_signals(self):
        store = MemoryStore()
        cache = FakeCache()
        signal = SettingsChangedSignal()
        received = []
        signal.subscribe(received.append)
        service = SiteSettingsService(store, cache, signal=signal)

        await service.get()
        updated = await service.update({"maintenance_mode": True}, updated_by="admin-1")

        assert updated.maintenance_mode is True
        assert updated.updated_by == "admin-1"
        assert cache.invalidations == 1
        assert received == [{"maintenanceMode": True}]
        assert (await service.get()).maintenance_mode is True


class TestSettingsChangedSignal:
    def test_failing_listener_does_not_stop_others(self):
        signal = SettingsChangedSignal()
        received = []

        def broken(detail):
            raise RuntimeError("listener bug")

        signal.subscribe(broken)
        signal.subscribe(received.append)
        assert signal.emit({"maintenanceMode": False}) == 2
        assert received == [{"maintenanceMode": False}]

    def test_unsubscribe(self):
        signal = SettingsChangedSignal()
        unsubscribe = signal.subscribe(lambda detail: None)
        unsubscribe()
        unsubscribe()
        assert signal.listener_count == 0
