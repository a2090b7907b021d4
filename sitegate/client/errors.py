from __future__ import annotations

from typing import Any, Optional

import httpx


class ApiError(Exception):
    """Normalized failure of an outbound API call.

    ``code`` is stable and safe to branch on; ``payload`` is the decoded
    response body when one was received.
    """

    code: str = "client_error"
    notice: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        payload: Any = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path
        self.payload = payload
        if code is not None:
            self.code = code


class AuthExpiredError(ApiError):
    code = "auth_expired"


class AuthIrrecoverableError(ApiError):
    """Refresh failed; the session has been purged and the user redirected."""

    code = "auth_irrecoverable"


class ServerFaultError(ApiError):
    code = "server_error"
    notice = "Server error. Please try again later."


class ForbiddenError(ApiError):
    code = "forbidden"
    notice = "Access denied. You do not have permission to perform this action."


class NotFoundError(ApiError):
    code = "not_found"
    notice = "Resource not found."


class RateLimitedError(ApiError):
    code = "rate_limited"
    notice = "Too many requests. Please wait a moment and try again."


class RequestTimeoutError(ApiError):
    code = "timeout"
    notice = "Request timeout. Please check your connection."


class OfflineError(ApiError):
    code = "offline"
    notice = "No internet connection. Please check your network."


class NetworkUnreachableError(ApiError):
    code = "network_error"
    notice = "Network error. Please check your connection and try again."


# Expected while the network is flaky; not worth an error log line
NOISE_ERRORS = (RequestTimeoutError, OfflineError, NetworkUnreachableError)


def _payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _message(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        message = payload.get("message")
        if not message and isinstance(payload.get("error"), dict):
            message = payload["error"].get("message")
        if isinstance(message, str) and message:
            return message
    return default


def error_for_response(response: httpx.Response, path: Optional[str] = None) -> ApiError:
    """Map a non-2xx response onto the client error taxonomy."""
    status = response.status_code
    payload = _payload(response)
    kwargs = {"status_code": status, "path": path, "payload": payload}
    if status == 401:
        return AuthExpiredError(_message(payload, "Authentication required"), **kwargs)
    if status == 403:
        return ForbiddenError(_message(payload, "Forbidden"), **kwargs)
    if status == 404:
        return NotFoundError(_message(payload, "Not found"), **kwargs)
    if status == 429:
        return RateLimitedError(_message(payload, "Too many requests"), **kwargs)
    if status >= 500:
        return ServerFaultError(_message(payload, "Server error"), **kwargs)
    return ApiError(_message(payload, f"Request failed with status {status}"), **kwargs)


def error_for_transport(
    exc: httpx.RequestError, path: Optional[str] = None, *, online: bool = True
) -> ApiError:
    """Map a transport failure (no response received)."""
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError("Request timed out", path=path)
    if not online:
        return OfflineError("No network connection", path=path)
    return NetworkUnreachableError(str(exc) or "Network error", path=path)


__all__ = [
    "ApiError",
    "AuthExpiredError",
    "AuthIrrecoverableError",
    "ForbiddenError",
    "NOISE_ERRORS",
    "NetworkUnreachableError",
    "NotFoundError",
    "OfflineError",
    "RateLimitedError",
    "RequestTimeoutError",
    "ServerFaultError",
    "error_for_response",
    "error_for_transport",
]
