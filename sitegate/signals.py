from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

from sitegate.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Optional[dict]], Any]


class SettingsChangedSignal:
    """In-process broadcast fired when an admin changes site settings.

    Only reaches listeners in the same process; other processes and devices
    pick the change up on their next timed poll.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, detail: Optional[dict] = None) -> int:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(detail)
            except Exception as exc:
                logger.warning(
                    "settings_changed_listener_failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
        return len(listeners)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


settings_changed = SettingsChangedSignal()
