"""Route classification shared by the server gate and the outbound client.

Both sides must agree on what counts as an administrative route: the gate
lets those through during maintenance, the client picks the admin credential
for them and the poller skips its status check on admin views. Keeping the
rules in one table stops the two from drifting apart.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit


class RouteClass(str, Enum):
    ADMIN = "admin"
    GENERAL = "general"


class MatchKind(str, Enum):
    PREFIX = "prefix"
    CONTAINS = "contains"
    SUFFIX = "suffix"
    EXACT = "exact"


class RouteScope(str, Enum):
    ADMIN = "admin"
    PUBLIC_STATUS = "public_status"


@dataclass(frozen=True)
class RouteRule:
    kind: MatchKind
    pattern: str
    scope: RouteScope

    def matches(self, path: str) -> bool:
        if self.kind == MatchKind.PREFIX:
            return path.startswith(self.pattern)
        if self.kind == MatchKind.CONTAINS:
            return self.pattern in path
        if self.kind == MatchKind.SUFFIX:
            return path.endswith(self.pattern)
        return path == self.pattern


ADMIN_MARKER = "/admin"

ROUTE_RULES: Tuple[RouteRule, ...] = (
    RouteRule(MatchKind.PREFIX, "/api/admin", RouteScope.ADMIN),
    # Client-relative paths and routers that already dropped the /api mount
    RouteRule(MatchKind.PREFIX, ADMIN_MARKER, RouteScope.ADMIN),
    RouteRule(MatchKind.CONTAINS, ADMIN_MARKER + "/", RouteScope.ADMIN),
    RouteRule(MatchKind.SUFFIX, ADMIN_MARKER, RouteScope.ADMIN),
    RouteRule(MatchKind.EXACT, ADMIN_MARKER, RouteScope.ADMIN),
    # Status probe and settings namespace stay reachable during maintenance
    RouteRule(MatchKind.PREFIX, "/api/settings", RouteScope.PUBLIC_STATUS),
    RouteRule(MatchKind.PREFIX, "/settings", RouteScope.PUBLIC_STATUS),
)

_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_path(path: Optional[str]) -> str:
    """Reduce a URL or path to a comparable form.

    Drops scheme/host, query string and fragment, collapses repeated slashes,
    lowercases and removes a trailing slash (except for the root).
    """
    if not path:
        return "/"
    raw = str(path).strip()
    if "://" in raw:
        raw = urlsplit(raw).path
    raw = raw.split("?", 1)[0].split("#", 1)[0]
    raw = _MULTI_SLASH.sub("/", raw).lower()
    if not raw.startswith("/"):
        raw = "/" + raw
    if len(raw) > 1 and raw.endswith("/"):
        raw = raw.rstrip("/") or "/"
    return raw


def strip_mount(path: str, mount: Optional[str]) -> str:
    """Remove a router mount prefix (e.g. ASGI ``root_path``) from ``path``."""
    if not mount:
        return path
    mount_norm = normalize_path(mount)
    path_norm = normalize_path(path)
    if mount_norm == "/":
        return path_norm
    if path_norm == mount_norm:
        return "/"
    if path_norm.startswith(mount_norm + "/"):
        return path_norm[len(mount_norm):]
    return path_norm


def path_variants(paths: Iterable[Optional[str]]) -> list[str]:
    variants: list[str] = []
    for path in paths:
        if path is None:
            continue
        norm = normalize_path(path)
        if norm not in variants:
            variants.append(norm)
    return variants


def _matches_scope(scope: RouteScope, paths: Iterable[Optional[str]]) -> bool:
    rules = [rule for rule in ROUTE_RULES if rule.scope == scope]
    return any(rule.matches(variant) for variant in path_variants(paths) for rule in rules)


def is_admin_path(*paths: Optional[str]) -> bool:
    """True if ANY representation of the path matches an admin rule."""
    return _matches_scope(RouteScope.ADMIN, paths)


def is_public_status_path(*paths: Optional[str]) -> bool:
    return _matches_scope(RouteScope.PUBLIC_STATUS, paths)


def classify(*paths: Optional[str]) -> RouteClass:
    return RouteClass.ADMIN if is_admin_path(*paths) else RouteClass.GENERAL


__all__ = [
    "ADMIN_MARKER",
    "MatchKind",
    "ROUTE_RULES",
    "RouteClass",
    "RouteRule",
    "RouteScope",
    "classify",
    "is_admin_path",
    "is_public_status_path",
    "normalize_path",
    "path_variants",
    "strip_mount",
]
