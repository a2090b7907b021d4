from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    email: str
    name: Optional[str] = None
    role: str = "user"
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def new(cls, email: str, *, name: Optional[str] = None, role: str = "user") -> "User":
        return cls(id=str(uuid.uuid4()), email=email, name=name, role=role)


@dataclass
class SiteSettings:
    """The per-deployment availability singleton."""

    maintenance_mode: bool = False
    site_name: str = "ITWOS AI Platform"
    site_description: str = "A comprehensive full-stack platform"
    registration_enabled: bool = True
    updated_at: datetime = field(default_factory=_utcnow)
    updated_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteSettings":
        payload = dict(data)
        updated_at = payload.get("updated_at")
        if isinstance(updated_at, str):
            payload["updated_at"] = datetime.fromisoformat(updated_at)
        known = {key: payload[key] for key in cls.__dataclass_fields__ if key in payload}
        return cls(**known)
