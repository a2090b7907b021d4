"""Maintenance-mode admission control.

Decision order, evaluated per request once the site settings singleton is
loaded:

1. maintenance off -> allow
2. any path representation matches an admin rule -> allow (even anonymous,
   so admins can still sign in)
3. authenticated admin principal -> allow
4. public status / settings namespace -> allow (clients poll for recovery,
   admins switch the flag off)
5. otherwise deny with a branded 503 body

Loading the singleton is the only failure that matters here and it fails
open: an unreachable settings store must not take the whole site down.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sitegate.logging import get_logger
from sitegate.routing import is_admin_path, is_public_status_path, path_variants
from sitegate.service.auth import Principal
from sitegate.storage.models import SiteSettings

logger = get_logger(__name__)

MAINTENANCE_MESSAGE = "Service is currently under maintenance"

SettingsLoader = Callable[[], Awaitable[SiteSettings]]
PrincipalResolver = Callable[[], Awaitable[Optional[Principal]]]


@dataclass
class GateRequest:
    """The several ways one inbound request's path can be spelled.

    ``path`` is the original URL path, ``routed_path`` the path after the
    router stripped its mount prefix, ``raw_path`` the undecoded request
    target. Upstream routers disagree on which one they keep, so the admin
    check looks at all of them.
    """

    path: str
    routed_path: Optional[str] = None
    raw_path: Optional[str] = None
    method: str = "GET"

    @property
    def representations(self) -> List[str]:
        return path_variants([self.path, self.routed_path, self.raw_path])


@dataclass
class Admission:
    allowed: bool
    reason: str
    status_code: int = 200
    denial: Optional[Dict[str, Any]] = field(default=None)


def denial_body(settings: SiteSettings) -> Dict[str, Any]:
    branding = {
        "siteName": settings.site_name,
        "siteDescription": settings.site_description,
    }
    return {
        "success": False,
        "message": MAINTENANCE_MESSAGE,
        "maintenanceMode": True,
        **branding,
        "settings": dict(branding),
    }


class AvailabilityGate:
    def __init__(self, load_settings: SettingsLoader) -> None:
        self._load_settings = load_settings

    async def admit(
        self,
        request: GateRequest,
        resolve_principal: Optional[PrincipalResolver] = None,
    ) -> Admission:
        try:
            settings = await self._load_settings()
        except Exception as exc:
            logger.error(
                "maintenance_check_failed_open",
                path=request.path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return Admission(allowed=True, reason="settings_unavailable")

        if not settings.maintenance_mode:
            return Admission(allowed=True, reason="maintenance_off")

        paths = request.representations
        if is_admin_path(*paths):
            return Admission(allowed=True, reason="admin_route")

        principal = await self._resolve(resolve_principal, request)
        if principal is not None and principal.is_admin:
            return Admission(allowed=True, reason="admin_principal")

        if is_public_status_path(*paths):
            return Admission(allowed=True, reason="public_status")

        logger.info(
            "maintenance_request_blocked",
            path=request.path,
            method=request.method,
            authenticated=principal is not None,
        )
        return Admission(
            allowed=False,
            reason="maintenance",
            status_code=503,
            denial=denial_body(settings),
        )

    async def _resolve(
        self, resolve_principal: Optional[PrincipalResolver], request: GateRequest
    ) -> Optional[Principal]:
        if resolve_principal is None:
            return None
        try:
            return await resolve_principal()
        except Exception as exc:
            logger.warning(
                "maintenance_principal_resolution_failed",
                path=request.path,
                error=str(exc),
            )
            return None
