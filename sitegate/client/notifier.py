from __future__ import annotations

from typing import List, Protocol, Tuple

from sitegate.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    """Surface a short user-facing notice (toast, banner, status line)."""

    def notify(self, message: str, *, level: str = "error") -> None: ...


class LoggingNotifier:
    """Default notifier for headless clients: notices go to the log."""

    def notify(self, message: str, *, level: str = "error") -> None:
        logger.info("user_notice", level=level, notice=message)


class RecordingNotifier:
    """Keeps every notice in memory; useful for embedding UIs and tests."""

    def __init__(self) -> None:
        self.notices: List[Tuple[str, str]] = []

    def notify(self, message: str, *, level: str = "error") -> None:
        self.notices.append((level, message))

    @property
    def messages(self) -> List[str]:
        return [message for _level, message in self.notices]
