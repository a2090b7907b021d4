from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Service-layer failure that knows its HTTP status and stable error code.

    Subclasses cover validation_error (400), unauthorized (401), forbidden
    (403), not_found (404) and service_unavailable (503).
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(ServiceError):
    pass


class AuthenticationError(ServiceError):
    status_code = 401
    error_code = "unauthorized"


class InvalidRefreshTokenError(AuthenticationError):
    """Refresh token is unknown, expired, revoked or a placeholder in production."""


class ForbiddenError(ServiceError):
    status_code = 403
    error_code = "forbidden"


class AdminRequiredError(ForbiddenError):
    def __init__(self, message: str = "admin access required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"


class ServiceUnavailableError(ServiceError):
    """A dependency the request needs is down (503)."""

    status_code = 503
    error_code = "service_unavailable"


__all__ = [
    "AdminRequiredError",
    "AuthenticationError",
    "ForbiddenError",
    "InvalidRefreshTokenError",
    "NotFoundError",
    "ServiceError",
    "ServiceUnavailableError",
    "ValidationError",
]
