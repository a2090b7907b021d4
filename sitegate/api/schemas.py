from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_VALID_ERROR_CODES = {
    "validation_error",
    "unauthorized",
    "forbidden",
    "not_found",
    "conflict",
    "rate_limited",
    "server_error",
    "service_unavailable",
}


class CamelModel(BaseModel):
    """Wire models speak camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorBody(BaseModel):
    """Error body with a stable code value."""

    code: str
    message: str
    details: Optional[Any] = None

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(f"unknown error code: {value}")
        return value


class Envelope(BaseModel):
    """Response envelope shared by every JSON endpoint."""

    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class MaintenanceStatus(CamelModel):
    maintenance_mode: bool
    site_name: str
    site_description: str


class TokenRefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, max_length=4096)


class TokenRefreshResponse(CamelModel):
    success: bool = True
    message: str = "Token refreshed successfully"
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class PrincipalResponse(CamelModel):
    user_id: str
    role: str
    email: Optional[str] = None


class SiteSettingsResponse(CamelModel):
    maintenance_mode: bool
    site_name: str
    site_description: str
    registration_enabled: bool
    updated_at: datetime
    updated_by: Optional[str] = None


class SiteSettingsUpdateRequest(CamelModel):
    """Partial update; only provided fields change."""

    maintenance_mode: Optional[bool] = None
    site_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    site_description: Optional[str] = Field(default=None, max_length=2000)
    registration_enabled: Optional[bool] = None
