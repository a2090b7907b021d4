"""Tests for the credential store and token selection."""

import pytest

from sitegate.client.decorator import decorate
from sitegate.client.session_store import CredentialSlots, SessionStore, select_token
from sitegate.config import AppMode
from sitegate.routing import RouteClass


class TestSelectToken:
    def test_admin_route_prefers_admin_slot(self):
        slots = CredentialSlots(access="user-tok", legacy_access="user-tok", admin="admin-tok")
        assert select_token(slots, RouteClass.ADMIN, AppMode.PRODUCTION) == "admin-tok"

    def test_general_route_prefers_access_slot(self):
        slots = CredentialSlots(access="user-tok", legacy_access="legacy-tok", admin="admin-tok")
        assert select_token(slots, RouteClass.GENERAL, AppMode.PRODUCTION) == "user-tok"

    def test_falls_back_through_preference_order(self):
        assert select_token(CredentialSlots(legacy_access="legacy"), RouteClass.GENERAL, AppMode.PRODUCTION) == "legacy"
        assert select_token(CredentialSlots(admin="adm"), RouteClass.GENERAL, AppMode.PRODUCTION) == "adm"
        assert select_token(CredentialSlots(access="acc"), RouteClass.ADMIN, AppMode.PRODUCTION) == "acc"

    def test_empty_store_selects_nothing(self):
        assert select_token(CredentialSlots(), RouteClass.GENERAL, AppMode.PRODUCTION) is None

    def test_placeholder_withheld_in_production(self):
        slots = CredentialSlots(access="mock-abc", refresh="real.refresh.token")
        assert select_token(slots, RouteClass.GENERAL, AppMode.PRODUCTION) is None

    def test_placeholder_passes_in_development(self):
        slots = CredentialSlots(access="mock-abc")
        assert select_token(slots, RouteClass.GENERAL, AppMode.DEVELOPMENT) == "mock-abc"


class TestDecorate:
    def test_attaches_bearer_and_replaces_explicit_header(self):
        slots = CredentialSlots(access="tok")
        headers = decorate(
            {"authorization": "Bearer stale", "X-Other": "1"},
            path="/products",
            slots=slots,
            mode=AppMode.PRODUCTION,
        )
        assert headers["Authorization"] == "Bearer tok"
        assert "authorization" not in headers
        assert headers["X-Other"] == "1"

    def test_strips_content_type_for_binary_body(self):
        headers = decorate(
            {"Content-Type": "application/json"},
            path="/uploads",
            slots=CredentialSlots(access="tok"),
            mode=AppMode.PRODUCTION,
            binary_body=True,
        )
        assert "Content-Type" not in headers
        assert headers["Authorization"] == "Bearer tok"

    def test_admin_path_uses_admin_slot(self):
        headers = decorate(
            {},
            path="/admin/users",
            slots=CredentialSlots(access="user", admin="adm"),
            mode=AppMode.PRODUCTION,
        )
        assert headers["Authorization"] == "Bearer adm"


class TestSessionStore:
    def test_store_login_writes_both_access_slots(self):
        store = SessionStore()
        slots = store.store_login(access_token="a1", refresh_token="r1", user={"id": "u", "role": "user"})
        assert slots.access == slots.legacy_access == "a1"
        assert slots.refresh == "r1"
        assert slots.admin is None
        assert store.principal("user") == {"id": "u", "role": "user"}

    def test_admin_login_fills_admin_slot(self):
        store = SessionStore()
        store.store_login(access_token="a1", user={"id": "a", "role": "admin"}, admin=True)
        assert store.slots.admin == "a1"
        assert store.has_admin_principal() is True

    def test_update_rejects_unknown_slots(self):
        with pytest.raises(KeyError):
            SessionStore().update(session="x")

    def test_clear_empties_everything_and_bumps_generation(self):
        store = SessionStore()
        store.store_login(access_token="a", refresh_token="r", user={"id": "u"}, admin=True)
        before = store.generation
        assert store.clear() is True
        assert store.slots.empty
        assert store.principal("user") is None
        assert store.principal("admin") is None
        assert store.generation == before + 1
        assert store.is_authenticated() is False

    def test_clear_with_stale_generation_is_skipped(self):
        store = SessionStore()
        stale = store.generation
        store.clear()
        store.store_login(access_token="fresh")
        assert store.clear(expected_generation=stale) is False
        assert store.slots.access == "fresh"

    def test_listeners_see_each_atomic_write(self):
        store = SessionStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.update(access="a", legacy_access="a")
        unsubscribe()
        store.update(access="b")
        assert len(seen) == 1
        assert seen[0].access == seen[0].legacy_access == "a"
