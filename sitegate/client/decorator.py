from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sitegate.client.session_store import CredentialSlots, select_token
from sitegate.config import AppMode
from sitegate.routing import RouteClass, classify


class RefreshState(str, Enum):
    IDLE = "idle"
    AWAITING_REFRESH = "awaiting_refresh"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass
class OutboundRequest:
    """Everything needed to build (and later replay) one logical call.

    ``retried`` and ``refresh_state`` are scoped to this request only; the
    refresh cycle runs at most once however many 401s come back.
    """

    method: str
    path: str
    params: Optional[Mapping[str, Any]] = None
    json: Any = None
    data: Any = None
    files: Any = None
    content: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    retried: bool = False
    refresh_state: RefreshState = RefreshState.IDLE
    background: bool = False

    @property
    def route_class(self) -> RouteClass:
        return classify(self.path)

    @property
    def binary_body(self) -> bool:
        """Multipart, form or raw bytes: the transport sets the content type."""
        return (
            self.files is not None
            or self.data is not None
            or isinstance(self.content, (bytes, bytearray))
        )


def _without(headers: Mapping[str, str], name: str) -> Dict[str, str]:
    lowered = name.lower()
    return {key: value for key, value in headers.items() if key.lower() != lowered}


def decorate(
    headers: Mapping[str, str],
    *,
    path: str,
    slots: CredentialSlots,
    mode: AppMode,
    binary_body: bool = False,
) -> Dict[str, str]:
    """Return outgoing headers with the route's credential attached.

    When a credential applies it replaces any caller-supplied Authorization
    header. For multipart or raw binary bodies any preset content type is
    removed so the transport can write its own boundary.
    """
    out = dict(headers)
    token = select_token(slots, classify(path), mode)
    if token:
        out = _without(out, "authorization")
        out["Authorization"] = f"Bearer {token}"
    if binary_body:
        out = _without(out, "content-type")
    return out


__all__ = ["OutboundRequest", "decorate"]
