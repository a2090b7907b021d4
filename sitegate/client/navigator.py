from __future__ import annotations

import threading
from typing import Callable, List, Optional

from sitegate.logging import get_logger
from sitegate.routing import normalize_path

logger = get_logger(__name__)

Hook = Callable[[str], object]


class Navigator:
    """Where the client currently is, and how it moves.

    ``redirect`` is a no-op when already at the target. Embedding UIs pass
    ``on_redirect`` / ``on_reload`` hooks to perform the actual navigation.
    """

    def __init__(
        self,
        current_path: str = "/",
        *,
        on_redirect: Optional[Hook] = None,
        on_reload: Optional[Hook] = None,
    ) -> None:
        self._current_path = current_path
        self._on_redirect = on_redirect
        self._on_reload = on_reload
        self._lock = threading.Lock()
        self.history: List[str] = []
        self.reload_count = 0

    @property
    def current_path(self) -> str:
        with self._lock:
            return self._current_path

    def navigate(self, path: str) -> None:
        """Record an in-app navigation (no redirect hook)."""
        with self._lock:
            self._current_path = path

    def is_at(self, target: str) -> bool:
        return normalize_path(self.current_path) == normalize_path(target)

    def redirect(self, target: str) -> bool:
        with self._lock:
            if normalize_path(self._current_path) == normalize_path(target):
                return False
            self._current_path = target
            self.history.append(target)
        logger.info("navigator_redirect", target=target)
        if self._on_redirect:
            self._on_redirect(target)
        return True

    def reload(self) -> None:
        with self._lock:
            self.reload_count += 1
            path = self._current_path
        logger.info("navigator_reload", path=path)
        if self._on_reload:
            self._on_reload(path)
