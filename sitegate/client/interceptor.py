"""Refresh-and-retry handling for requests rejected with 401.

Each logical request gets at most one refresh cycle, tracked on the
request itself as ``OutboundRequest.refresh_state``::

    IDLE -> AWAITING_REFRESH -> RETRYING   (new token stored, request replayed)
                             -> FAILED     (session purged, user redirected)

Concurrent requests presenting the same refresh token can share a single
refresh call (``coalesce_refresh``). Whether or not they do, the purge and
redirect happen once per credential generation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from sitegate.client.decorator import OutboundRequest, RefreshState
from sitegate.client.errors import AuthExpiredError, AuthIrrecoverableError
from sitegate.client.navigator import Navigator
from sitegate.client.session_store import SessionStore
from sitegate.config import ClientSettings
from sitegate.logging import get_logger
from sitegate.routing import RouteClass
from sitegate.tokens import is_placeholder

logger = get_logger(__name__)

REFRESH_PATH = "/auth/refresh"

Sender = Callable[[OutboundRequest], Awaitable[httpx.Response]]


class RefreshFailed(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def extract_tokens(body: Any) -> Tuple[Optional[str], Optional[str]]:
    """Pull the access and refresh tokens out of a refresh response.

    Accepts the flat ``{accessToken, refreshToken}`` shape, the legacy nested
    ``{tokens: {...}}`` shape and either of those wrapped in ``data``.
    """
    if not isinstance(body, dict):
        return None, None
    if isinstance(body.get("data"), dict):
        body = body["data"]
    if isinstance(body.get("tokens"), dict):
        body = body["tokens"]
    access = body.get("accessToken") or body.get("access_token") or body.get("token")
    refresh = body.get("refreshToken") or body.get("refresh_token")
    return (
        access if isinstance(access, str) else None,
        refresh if isinstance(refresh, str) else None,
    )


class RefreshInterceptor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        store: SessionStore,
        navigator: Navigator,
        settings: ClientSettings,
        *,
        refresh_path: str = REFRESH_PATH,
    ) -> None:
        self.client = client
        self.store = store
        self.navigator = navigator
        self.settings = settings
        self.refresh_path = refresh_path
        self.refresh_calls = 0
        self._inflight: Dict[str, asyncio.Task] = {}

    async def handle(self, request: OutboundRequest, send: Sender) -> httpx.Response:
        """Refresh credentials after a 401 and replay ``request`` once."""
        if request.retried:
            raise AuthExpiredError(
                "Authentication required", status_code=401, path=request.path
            )
        request.retried = True
        route_class = request.route_class
        generation = self.store.generation

        self._transition(RefreshState.AWAITING_REFRESH, request)
        try:
            access, refresh = await self._obtain_tokens()
            self._store_tokens(access, refresh, route_class)
        except Exception as exc:
            reason = exc.reason if isinstance(exc, RefreshFailed) else type(exc).__name__
            self._transition(RefreshState.FAILED, request, reason=reason)
            self._purge(generation, route_class, reason)
            raise AuthIrrecoverableError(
                "Session expired. Please log in again.",
                status_code=401,
                path=request.path,
                code="auth_irrecoverable",
            ) from exc

        self._transition(RefreshState.RETRYING, request)
        return await send(request)

    # -- refresh -------------------------------------------------------------

    async def _obtain_tokens(self) -> Tuple[str, Optional[str]]:
        refresh_token = self.store.slots.refresh
        if not refresh_token:
            raise RefreshFailed("missing_refresh_token")
        if is_placeholder(refresh_token) and not self.settings.development:
            raise RefreshFailed("placeholder_refresh_token")
        if not self.settings.coalesce_refresh:
            return await self._call_refresh(refresh_token)

        task = self._inflight.get(refresh_token)
        if task is None:
            task = asyncio.ensure_future(self._call_refresh(refresh_token))
            self._inflight[refresh_token] = task
            task.add_done_callback(lambda _t: self._inflight.pop(refresh_token, None))
        else:
            logger.debug("refresh_coalesced")
        # One waiter being cancelled must not cancel the shared call
        return await asyncio.shield(task)

    async def _call_refresh(self, refresh_token: str) -> Tuple[str, Optional[str]]:
        self.refresh_calls += 1
        try:
            response = await self.client.post(
                self.refresh_path,
                json={"refreshToken": refresh_token},
                timeout=self.settings.refresh_timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise RefreshFailed("refresh_timeout") from exc
        except httpx.RequestError as exc:
            raise RefreshFailed("refresh_transport_error") from exc
        if not response.is_success:
            raise RefreshFailed(f"refresh_status_{response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise RefreshFailed("refresh_invalid_body") from exc
        access, refresh = extract_tokens(body)
        if not access:
            raise RefreshFailed("refresh_missing_access_token")
        if is_placeholder(access) and not self.settings.development:
            raise RefreshFailed("refresh_returned_placeholder")
        return access, refresh

    def _store_tokens(
        self, access: str, refresh: Optional[str], route_class: RouteClass
    ) -> None:
        changes: Dict[str, Optional[str]] = {"access": access, "legacy_access": access}
        if refresh and (self.settings.development or not is_placeholder(refresh)):
            changes["refresh"] = refresh
        if route_class == RouteClass.ADMIN:
            changes["admin"] = access
        self.store.update(**changes)
        logger.info(
            "access_token_refreshed",
            route_class=route_class.value,
            refresh_rotated="refresh" in changes,
        )

    # -- failure -------------------------------------------------------------

    def _purge(self, generation: int, route_class: RouteClass, reason: str) -> None:
        if not self.store.clear(expected_generation=generation):
            logger.debug("session_purge_already_done", reason=reason)
            return
        target = (
            self.settings.admin_login_path
            if route_class == RouteClass.ADMIN
            else self.settings.login_path
        )
        logger.warning("session_purged", reason=reason, redirect=target)
        self.navigator.redirect(target)

    def _transition(self, state: RefreshState, request: OutboundRequest, **fields: Any) -> None:
        request.refresh_state = state
        logger.debug(
            "refresh_state_changed",
            state=state.value,
            method=request.method,
            path=request.path,
            **fields,
        )


__all__ = ["REFRESH_PATH", "RefreshFailed", "RefreshInterceptor", "RefreshState", "extract_tokens"]
