from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from sitegate.api.schemas import (
    Envelope,
    LogoutRequest,
    MaintenanceStatus,
    PrincipalResponse,
    SiteSettingsResponse,
    SiteSettingsUpdateRequest,
    TokenRefreshRequest,
    TokenRefreshResponse,
)
from sitegate.logging import get_logger
from sitegate.service.auth import Principal
from sitegate.service.errors import (
    AdminRequiredError,
    AuthenticationError,
    InvalidRefreshTokenError,
    ValidationError,
)
from sitegate.service.runtime import get_runtime
from sitegate.storage.models import SiteSettings

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

STATUS_FAILURE_MESSAGE = "Failed to get maintenance status"


async def get_user(authorization: Optional[str] = Header(None)) -> Principal:
    runtime = get_runtime()
    principal = runtime.tokens.authenticate(authorization)
    if not principal:
        raise AuthenticationError("invalid or expired token")
    return principal


async def get_admin_user(principal: Principal = Depends(get_user)) -> Principal:
    if not principal.is_admin:
        raise AdminRequiredError()
    return principal


def _settings_response(settings: SiteSettings) -> SiteSettingsResponse:
    return SiteSettingsResponse(
        maintenance_mode=settings.maintenance_mode,
        site_name=settings.site_name,
        site_description=settings.site_description,
        registration_enabled=settings.registration_enabled,
        updated_at=settings.updated_at,
        updated_by=settings.updated_by,
    )


@router.get("/settings/maintenance-status")
async def maintenance_status():
    """Public availability probe polled by clients; needs no credentials."""
    runtime = get_runtime()
    try:
        settings = await runtime.site_settings.get()
    except Exception as exc:
        logger.error("maintenance_status_failed", error_type=type(exc).__name__, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": STATUS_FAILURE_MESSAGE,
                "data": {"maintenanceMode": False},
            },
        )
    status = MaintenanceStatus(
        maintenance_mode=settings.maintenance_mode,
        site_name=settings.site_name,
        site_description=settings.site_description,
    )
    return {"success": True, "data": status.model_dump(by_alias=True)}


@router.post("/auth/refresh", response_model=TokenRefreshResponse)
async def refresh_tokens(body: TokenRefreshRequest):
    runtime = get_runtime()
    result = await runtime.tokens.refresh(body.refresh_token)
    if not result:
        raise InvalidRefreshTokenError("invalid refresh token")
    _user, tokens = result
    return TokenRefreshResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        token_type=tokens.get("token_type", "bearer"),
        expires_in=tokens["expires_in"],
    )


@router.post("/auth/logout", response_model=Envelope, response_model_exclude_none=True)
async def logout(body: Optional[LogoutRequest] = None):
    runtime = get_runtime()
    revoked = False
    if body and body.refresh_token:
        revoked = await runtime.tokens.revoke(body.refresh_token)
    logger.info("logout", refresh_revoked=revoked)
    return Envelope(success=True, message="Logged out", data={"revoked": revoked})


@router.get("/auth/me", response_model=Envelope, response_model_exclude_none=True)
async def me(principal: Principal = Depends(get_user)):
    data = PrincipalResponse(
        user_id=principal.user_id, role=principal.role, email=principal.email
    )
    return Envelope(success=True, data=data.model_dump(by_alias=True))


@router.get("/admin/settings", response_model=Envelope, response_model_exclude_none=True)
async def get_site_settings(principal: Principal = Depends(get_admin_user)):
    runtime = get_runtime()
    settings = await runtime.site_settings.get()
    return Envelope(
        success=True,
        data=_settings_response(settings).model_dump(by_alias=True, mode="json"),
    )


@router.patch("/admin/settings", response_model=Envelope, response_model_exclude_none=True)
async def update_site_settings(
    body: SiteSettingsUpdateRequest, principal: Principal = Depends(get_admin_user)
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("no settings provided")
    runtime = get_runtime()
    settings = await runtime.site_settings.update(changes, updated_by=principal.user_id)
    logger.info(
        "site_settings_updated",
        admin_id=principal.user_id,
        fields=sorted(changes),
    )
    return Envelope(
        success=True,
        message="Settings updated successfully",
        data=_settings_response(settings).model_dump(by_alias=True, mode="json"),
    )
