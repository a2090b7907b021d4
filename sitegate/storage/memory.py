from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sitegate.logging import get_logger
from sitegate.storage.errors import ConstraintViolation
from sitegate.storage.models import SiteSettings, User

_SITE_SETTINGS_FIELDS = {
    "maintenance_mode",
    "site_name",
    "site_description",
    "registration_enabled",
}


class MemoryStore:
    """In-process backing store for users and the site settings singleton."""

    def __init__(
        self,
        *,
        default_site_name: str = "ITWOS AI Platform",
        default_site_description: str = "A comprehensive full-stack platform",
    ) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.site_settings: Optional[SiteSettings] = None
        self._default_site_name = default_site_name
        self._default_site_description = default_site_description
        # RLock so get-or-create can be called from inside update
        self._data_lock = threading.RLock()

    # -- users ---------------------------------------------------------------

    def create_user(
        self, email: str, *, name: Optional[str] = None, role: str = "user"
    ) -> User:
        normalized = email.strip().lower()
        with self._data_lock:
            if any(u.email == normalized for u in self.users.values()):
                raise ConstraintViolation("email already exists", {"email": normalized})
            user = User.new(normalized, name=name, role=role)
            self.users[user.id] = user
        self.logger.info("user_created", user_id=user.id, role=role)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        normalized = email.strip().lower()
        with self._data_lock:
            return next((u for u in self.users.values() if u.email == normalized), None)

    def first_user_with_role(self, role: str) -> Optional[User]:
        with self._data_lock:
            candidates = sorted(
                (u for u in self.users.values() if u.role == role and u.is_active),
                key=lambda u: u.created_at,
            )
        return candidates[0] if candidates else None

    def update_user_role(self, user_id: str, role: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.role = role
            return user

    # -- site settings singleton --------------------------------------------

    def get_or_create_site_settings(self) -> SiteSettings:
        with self._data_lock:
            if self.site_settings is None:
                self.site_settings = SiteSettings(
                    site_name=self._default_site_name,
                    site_description=self._default_site_description,
                )
                self.logger.info("site_settings_created")
            return replace(self.site_settings)

    def update_site_settings(
        self, changes: Dict[str, Any], *, updated_by: Optional[str] = None
    ) -> SiteSettings:
        unknown = set(changes) - _SITE_SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"unknown site settings fields: {sorted(unknown)}")
        with self._data_lock:
            current = self.get_or_create_site_settings()
            self.site_settings = replace(
                current,
                **changes,
                updated_at=datetime.now(timezone.utc),
                updated_by=updated_by,
            )
            return replace(self.site_settings)
