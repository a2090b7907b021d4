from __future__ import annotations

from typing import Any

# Substrings produced by the offline mock-login helpers ("mock-...", "mock-refresh-...")
PLACEHOLDER_MARKERS = ("mock",)


def is_placeholder(token: Any) -> bool:
    """Return True if ``token`` is a locally generated stand-in credential.

    Case-insensitive substring match on the mock markers. Empty, missing or
    non-string input is never a placeholder.
    """
    if not token or not isinstance(token, str):
        return False
    lowered = token.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def is_real_token(token: Any) -> bool:
    return isinstance(token, str) and bool(token) and not is_placeholder(token)


__all__ = ["PLACEHOLDER_MARKERS", "is_placeholder", "is_real_token"]
