from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from sitegate.client.decorator import OutboundRequest, decorate
from sitegate.client.errors import (
    NOISE_ERRORS,
    ApiError,
    AuthIrrecoverableError,
    error_for_response,
    error_for_transport,
)
from sitegate.client.interceptor import RefreshInterceptor
from sitegate.client.navigator import Navigator
from sitegate.client.notifier import LoggingNotifier, Notifier
from sitegate.client.session_store import CredentialSlots, SessionStore
from sitegate.config import ClientSettings
from sitegate.logging import get_logger
from sitegate.routing import normalize_path

logger = get_logger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class ApiClient:
    """Async API facade: attaches credentials, refreshes on 401, normalizes errors.

    Successful calls return the ``httpx.Response``. Failures raise an
    ``ApiError`` subclass; foreground failures also produce a user notice,
    background and polling calls only log.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        store: Optional[SessionStore] = None,
        navigator: Optional[Navigator] = None,
        notifier: Optional[Notifier] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        online_probe: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.settings = settings or ClientSettings.from_env()
        self.store = store or SessionStore()
        self.navigator = navigator or Navigator()
        self.notifier = notifier or LoggingNotifier()
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )
        self.default_headers: Dict[str, str] = dict(DEFAULT_HEADERS)
        self.online_probe = online_probe or (lambda: True)
        self.interceptor = RefreshInterceptor(
            self.client, self.store, self.navigator, self.settings
        )
        self._background_routes = [normalize_path(r) for r in self.settings.background_routes]

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    # -- verbs ---------------------------------------------------------------

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Any = None,
        files: Any = None,
        content: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        background: bool = False,
    ) -> httpx.Response:
        outbound = OutboundRequest(
            method=method.upper(),
            path=path,
            params=params,
            json=json,
            data=data,
            files=files,
            content=content,
            headers=dict(headers or {}),
            background=background or self.is_background_route(path),
        )
        try:
            return await self._dispatch(outbound)
        except AuthIrrecoverableError:
            raise
        except ApiError as exc:
            self._report(outbound, exc)
            raise

    # -- session helpers -----------------------------------------------------

    def store_login(
        self,
        *,
        access_token: str,
        refresh_token: Optional[str] = None,
        user: Optional[dict] = None,
        admin: bool = False,
    ) -> CredentialSlots:
        return self.store.store_login(
            access_token=access_token, refresh_token=refresh_token, user=user, admin=admin
        )

    async def logout(self) -> None:
        """Revoke the refresh token (best effort), clear the session, go to login."""
        refresh_token = self.store.slots.refresh
        if refresh_token:
            try:
                await self.request(
                    "POST",
                    "/auth/logout",
                    json={"refreshToken": refresh_token},
                    background=True,
                )
            except ApiError as exc:
                logger.info("logout_revoke_failed", error_code=exc.code)
        self.store.clear()
        self.navigator.redirect(self.settings.login_path)

    def is_background_route(self, path: str) -> bool:
        norm = normalize_path(path)
        return any(
            norm == route or norm.startswith(route + "/") for route in self._background_routes
        )

    # -- internals -----------------------------------------------------------

    async def _dispatch(self, outbound: OutboundRequest) -> httpx.Response:
        response = await self._send(outbound)
        if response.status_code == 401 and not outbound.retried:
            response = await self.interceptor.handle(outbound, self._send)
        if response.is_success:
            return response
        raise error_for_response(response, outbound.path)

    async def _send(self, outbound: OutboundRequest) -> httpx.Response:
        headers = decorate(
            {**self.default_headers, **outbound.headers},
            path=outbound.path,
            slots=self.store.slots,
            mode=self.settings.app_mode,
            binary_body=outbound.binary_body,
        )
        request = self.client.build_request(
            outbound.method,
            outbound.path,
            params=outbound.params,
            json=outbound.json,
            data=outbound.data,
            files=outbound.files,
            content=outbound.content,
            headers=headers,
        )
        try:
            return await self.client.send(request)
        except httpx.RequestError as exc:
            raise error_for_transport(
                exc, outbound.path, online=self.online_probe()
            ) from exc

    def _report(self, outbound: OutboundRequest, exc: ApiError) -> None:
        if not isinstance(exc, NOISE_ERRORS):
            log_fn = logger.error if (exc.status_code or 0) >= 500 else logger.warning
            log_fn(
                "api_request_failed",
                method=outbound.method,
                path=outbound.path,
                status_code=exc.status_code,
                error_code=exc.code,
                background=outbound.background,
            )
        if outbound.background or not exc.notice:
            return
        self.notifier.notify(exc.notice)


__all__ = ["ApiClient", "DEFAULT_HEADERS"]
