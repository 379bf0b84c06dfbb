"""Sale and subscriber snapshots read by the line queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .base import parse_datetime


@dataclass(frozen=True)
class Sale:
    id: str
    title: str
    organizer_id: str | None = None
    line_started_at: datetime | None = None

    @property
    def line_started(self) -> bool:
        return self.line_started_at is not None

    def is_managed_by(self, organizer_id: str) -> bool:
        return self.organizer_id is not None and self.organizer_id == organizer_id

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            organizer_id=data.get("organizer_id"),
            line_started_at=parse_datetime(data.get("line_started_at")),
        )


@dataclass(frozen=True)
class Subscriber:
    """A user subscribed to updates of a sale."""

    sale_id: str
    user_id: str
    phone: str | None = None
    email: str | None = None

    @property
    def contact(self) -> str | None:
        """Preferred contact method: phone first, then email."""
        return self.phone or self.email or None

    @classmethod
    def from_dict(cls, data: dict) -> "Subscriber":
        return cls(
            sale_id=str(data["sale_id"]),
            user_id=str(data["user_id"]),
            phone=_clean(data.get("phone")),
            email=_clean(data.get("email")),
        )


def _clean(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


__all__ = ["Sale", "Subscriber"]
