from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from sitegate.config import AppMode
from sitegate.logging import get_logger
from sitegate.routing import RouteClass
from sitegate.tokens import is_placeholder, is_real_token

logger = get_logger(__name__)

SLOT_NAMES = ("access", "legacy_access", "admin", "refresh")


@dataclass(frozen=True)
class CredentialSlots:
    """Immutable snapshot of every stored credential.

    ``access`` and ``legacy_access`` hold the same token; older parts of the
    client still read the alias.
    """

    access: Optional[str] = None
    legacy_access: Optional[str] = None
    admin: Optional[str] = None
    refresh: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not any((self.access, self.legacy_access, self.admin, self.refresh))


Listener = Callable[[CredentialSlots], Any]


class SessionStore:
    """Shared credential namespace read by every outbound call.

    All multi-slot writes replace the whole ``CredentialSlots`` value under a
    lock. ``generation`` moves forward on every clear so concurrent failure
    handlers can tell whether someone else already purged the session.
    """

    def __init__(self, slots: Optional[CredentialSlots] = None) -> None:
        self._slots = slots or CredentialSlots()
        self._principals: Dict[str, Optional[dict]] = {"user": None, "admin": None}
        self._generation = 0
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    @property
    def slots(self) -> CredentialSlots:
        with self._lock:
            return self._slots

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, name: str) -> Optional[str]:
        if name not in SLOT_NAMES:
            raise KeyError(name)
        return getattr(self.slots, name)

    def update(self, **changes: Optional[str]) -> CredentialSlots:
        unknown = set(changes) - set(SLOT_NAMES)
        if unknown:
            raise KeyError(f"unknown credential slots: {sorted(unknown)}")
        with self._lock:
            self._slots = replace(self._slots, **changes)
            slots = self._slots
        self._notify(slots)
        return slots

    def clear(self, *, expected_generation: Optional[int] = None) -> bool:
        """Empty every slot and cached principal.

        With ``expected_generation`` the clear only happens if nobody cleared
        the store since that generation was read; returns whether it ran.
        """
        with self._lock:
            if expected_generation is not None and expected_generation != self._generation:
                return False
            self._slots = CredentialSlots()
            self._principals = {"user": None, "admin": None}
            self._generation += 1
            slots = self._slots
        logger.info("session_cleared", generation=self._generation)
        self._notify(slots)
        return True

    def store_login(
        self,
        *,
        access_token: str,
        refresh_token: Optional[str] = None,
        user: Optional[dict] = None,
        admin: bool = False,
    ) -> CredentialSlots:
        """Record the result of a login flow in one atomic write."""
        changes: Dict[str, Optional[str]] = {
            "access": access_token,
            "legacy_access": access_token,
        }
        if refresh_token is not None:
            changes["refresh"] = refresh_token
        if admin:
            changes["admin"] = access_token
        with self._lock:
            self._slots = replace(self._slots, **changes)
            if user is not None:
                self._principals["admin" if admin else "user"] = dict(user)
            slots = self._slots
        self._notify(slots)
        return slots

    # -- cached principals ---------------------------------------------------

    def principal(self, kind: str = "user") -> Optional[dict]:
        with self._lock:
            cached = self._principals.get(kind)
            return dict(cached) if cached else None

    def has_admin_principal(self) -> bool:
        with self._lock:
            principals = [p for p in self._principals.values() if p]
        return any(p.get("role") == "admin" for p in principals)

    def is_authenticated(self) -> bool:
        slots = self.slots
        return bool(slots.access or slots.legacy_access or slots.admin)

    # -- listeners -----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, slots: CredentialSlots) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(slots)
            except Exception as exc:
                logger.warning("session_listener_failed", error=str(exc))


_PREFERENCE = {
    RouteClass.ADMIN: ("admin", "access", "legacy_access"),
    RouteClass.GENERAL: ("access", "legacy_access", "admin"),
}


def select_token(
    slots: CredentialSlots, route_class: RouteClass, mode: AppMode
) -> Optional[str]:
    """Pick the credential to attach for a route.

    The first non-empty slot in the route's preference order wins. Outside
    development mode a placeholder is never sent; the backend's 401 then
    drives the refresh path.
    """
    token: Optional[str] = None
    for name in _PREFERENCE[route_class]:
        value = getattr(slots, name)
        if value:
            token = value
            break
    if token is None:
        return None
    if mode != AppMode.DEVELOPMENT and is_placeholder(token):
        logger.debug(
            "placeholder_token_withheld",
            route_class=route_class.value,
            refresh_available=is_real_token(slots.refresh),
        )
        return None
    return token
