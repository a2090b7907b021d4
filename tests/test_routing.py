"""Tests for the shared route classification table."""

import pytest

from sitegate.routing import (
    RouteClass,
    classify,
    is_admin_path,
    is_public_status_path,
    normalize_path,
    path_variants,
    strip_mount,
)


class TestNormalizePath:
    def test_strips_query_fragment_and_host(self):
        assert normalize_path("https://example.com/API//Admin/users/?page=2#top") == "/api/admin/users"

    def test_adds_leading_slash_and_drops_trailing_slash(self):
        assert normalize_path("admin/") == "/admin"

    def test_empty_is_root(self):
        assert normalize_path("") == "/"
        assert normalize_path(None) == "/"
        assert normalize_path("/") == "/"


class TestAdminClassification:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/admin/users",
            "/admin",
            "/admin/",
            "/admin/settings?tab=general",
            "/shop/admin/orders",
            "/reports/admin",
            "/ADMIN/dashboard",
        ],
    )
    def test_admin_paths(self, path):
        assert is_admin_path(path) is True
        assert classify(path) == RouteClass.ADMIN

    @pytest.mark.parametrize("path", ["/products", "/api/users", "/api/auth/me", "/"])
    def test_general_paths(self, path):
        assert is_admin_path(path) is False
        assert classify(path) == RouteClass.GENERAL

    def test_any_representation_matching_is_enough(self):
        assert is_admin_path("/products", None, "/admin/products") is True


class TestPublicStatus:
    @pytest.mark.parametrize(
        "path", ["/api/settings/maintenance-status", "/settings/maintenance-status", "/api/settings"]
    )
    def test_status_namespace(self, path):
        assert is_public_status_path(path) is True

    def test_other_paths_are_not_public_status(self):
        assert is_public_status_path("/api/products") is False


class TestMountHandling:
    def test_strip_mount_removes_prefix(self):
        assert strip_mount("/api/admin/users", "/api") == "/admin/users"

    def test_strip_mount_without_mount(self):
        assert strip_mount("/products", None) == "/products"
        assert strip_mount("/products", "/api") == "/products"

    def test_path_variants_deduplicates(self):
        assert path_variants(["/A/", "/a", None, "/b"]) == ["/a", "/b"]
