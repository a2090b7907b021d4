"""Client-side availability polling.

``AvailabilityPoller`` keeps a session's view of maintenance mode current:
it re-checks the public status endpoint on a timer (backing off after
repeated failures) and immediately when a settings change is signalled in
this process. Anything inconclusive counts as "site available".

``MaintenanceView`` drives the full-screen maintenance page: it polls on its
own fixed interval and reloads the app as soon as maintenance ends.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from sitegate.client.api import ApiClient
from sitegate.client.errors import NOISE_ERRORS, ApiError
from sitegate.logging import get_logger
from sitegate.routing import RouteClass, classify
from sitegate.signals import SettingsChangedSignal, settings_changed

logger = get_logger(__name__)

STATUS_PATH = "/settings/maintenance-status"


class PollState(str, Enum):
    CHECKING = "checking"
    BLOCKED = "blocked"
    CLEAR = "clear"


@dataclass
class StatusSnapshot:
    maintenance_mode: bool
    site_name: Optional[str] = None
    site_description: Optional[str] = None


def _flag(value: Any) -> bool:
    """Only an explicit true blocks; anything else keeps the site open."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _parse_status(body: Any) -> StatusSnapshot:
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        data = body if isinstance(body, dict) else {}
    settings = data.get("settings") if isinstance(data.get("settings"), dict) else {}
    return StatusSnapshot(
        maintenance_mode=_flag(data.get("maintenanceMode")),
        site_name=data.get("siteName") or settings.get("siteName"),
        site_description=data.get("siteDescription") or settings.get("siteDescription"),
    )


async def fetch_status(api: ApiClient, status_path: str = STATUS_PATH) -> StatusSnapshot:
    response = await api.get(status_path, background=True)
    try:
        body = response.json()
    except ValueError:
        body = {}
    return _parse_status(body)


class AvailabilityPoller:
    def __init__(
        self,
        api: ApiClient,
        *,
        signal: Optional[SettingsChangedSignal] = None,
        status_path: str = STATUS_PATH,
    ) -> None:
        self.api = api
        self.settings = api.settings
        self.signal = signal or settings_changed
        self.status_path = status_path
        self.state = PollState.CLEAR
        self._settled = PollState.CLEAR
        self.failures = 0
        self.last_status: Optional[StatusSnapshot] = None
        self._listeners: List[Callable[[PollState], Any]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wake: Optional[asyncio.Event] = None

    @property
    def blocked(self) -> bool:
        return self.state == PollState.BLOCKED

    def on_change(self, listener: Callable[[PollState], Any]) -> None:
        self._listeners.append(listener)

    def should_skip(self) -> bool:
        """Admin views and admin sessions never see the maintenance screen."""
        if classify(self.api.navigator.current_path) == RouteClass.ADMIN:
            return True
        return self.api.store.has_admin_principal()

    def next_interval(self) -> float:
        if self.failures >= self.settings.poll_failure_cap:
            return self.settings.poll_long_interval_seconds
        return self.settings.poll_short_interval_seconds

    async def check(self) -> PollState:
        self.state = PollState.CHECKING
        if self.should_skip():
            return self._settle(PollState.CLEAR)
        try:
            status = await asyncio.wait_for(
                fetch_status(self.api, self.status_path),
                timeout=self.settings.status_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._record_failure()
            logger.debug("maintenance_poll_timeout_failed_open", failures=self.failures)
            return self._settle(PollState.CLEAR)
        except ApiError as exc:
            self._record_failure()
            if not isinstance(exc, NOISE_ERRORS):
                logger.warning(
                    "maintenance_poll_failed_open",
                    error_code=exc.code,
                    status_code=exc.status_code,
                    failures=self.failures,
                )
            return self._settle(PollState.CLEAR)

        self.failures = 0
        self.last_status = status
        return self._settle(PollState.BLOCKED if status.maintenance_mode else PollState.CLEAR)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop`` is set (or the task is cancelled)."""
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        unsubscribe = self.signal.subscribe(self._on_settings_changed)
        try:
            while stop is None or not stop.is_set():
                await self.check()
                await self._sleep(self.next_interval(), stop)
        finally:
            unsubscribe()
            self._wake = None
            self._loop = None

    def wake(self) -> None:
        if self._loop is not None and self._wake is not None:
            self._loop.call_soon_threadsafe(self._wake.set)

    def _on_settings_changed(self, detail: Optional[dict]) -> None:
        logger.debug("maintenance_poll_woken", detail=detail)
        self.wake()

    async def _sleep(self, interval: float, stop: Optional[asyncio.Event]) -> None:
        waiters = [asyncio.ensure_future(self._wake.wait())]
        if stop is not None:
            waiters.append(asyncio.ensure_future(stop.wait()))
        try:
            await asyncio.wait(waiters, timeout=interval, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            self._wake.clear()

    def _record_failure(self) -> None:
        self.failures = min(self.failures + 1, self.settings.poll_failure_cap)

    def _settle(self, state: PollState) -> PollState:
        previous, self._settled = self._settled, state
        self.state = state
        if previous != state:
            for listener in list(self._listeners):
                listener(state)
        return state


class MaintenanceView:
    """State behind the full-screen maintenance page."""

    def __init__(self, api: ApiClient, *, status_path: str = STATUS_PATH) -> None:
        self.api = api
        self.status_path = status_path
        self.interval = api.settings.maintenance_view_interval_seconds
        self.site_name: Optional[str] = None
        self.site_description: Optional[str] = None
        self.recovered = False

    async def check_now(self) -> bool:
        """Poll once; reload the app and return True if maintenance is over."""
        try:
            status = await asyncio.wait_for(
                fetch_status(self.api, self.status_path),
                timeout=self.api.settings.status_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.debug("maintenance_view_poll_timeout")
            return False
        except ApiError as exc:
            if not isinstance(exc, NOISE_ERRORS):
                logger.warning("maintenance_view_poll_failed", error_code=exc.code)
            return False
        if status.site_name:
            self.site_name = status.site_name
        if status.site_description:
            self.site_description = status.site_description
        if status.maintenance_mode:
            return False
        self.recovered = True
        logger.info("maintenance_over_reloading")
        self.api.navigator.reload()
        return True

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        while not self.recovered and (stop is None or not stop.is_set()):
            if await self.check_now():
                return
            if stop is None:
                await asyncio.sleep(self.interval)
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass


__all__ = [
    "AvailabilityPoller",
    "MaintenanceView",
    "PollState",
    "STATUS_PATH",
    "StatusSnapshot",
    "fetch_status",
]
