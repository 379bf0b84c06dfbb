"""Line entry domain model and its state machine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .base import parse_datetime


class LineEntryStatus(str, Enum):
    """Enumeration of line entry states.

    ``WAITING -> CALLED -> SERVED`` is the normal path; ``WAITING`` and
    ``CALLED`` entries may also be ``CANCELLED``. ``SERVED`` and ``CANCELLED``
    are terminal.
    """

    WAITING = "WAITING"
    CALLED = "CALLED"
    SERVED = "SERVED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (LineEntryStatus.SERVED, LineEntryStatus.CANCELLED)

    def can_transition_to(self, target: "LineEntryStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[LineEntryStatus, frozenset[LineEntryStatus]] = {
    LineEntryStatus.WAITING: frozenset(
        {LineEntryStatus.CALLED, LineEntryStatus.CANCELLED}
    ),
    LineEntryStatus.CALLED: frozenset(
        {LineEntryStatus.SERVED, LineEntryStatus.CANCELLED}
    ),
    LineEntryStatus.SERVED: frozenset(),
    LineEntryStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class LineEntry:
    """A shopper's place in the physical line of a sale."""

    id: int
    sale_id: str
    user_id: str
    position: int
    status: LineEntryStatus = LineEntryStatus.WAITING
    contact: str | None = None
    notified_at: datetime | None = None
    entered_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "LineEntry":
        return cls(
            id=int(data["id"]),
            sale_id=str(data["sale_id"]),
            user_id=str(data["user_id"]),
            position=int(data["position"]),
            status=LineEntryStatus(data["status"]),
            contact=data.get("contact"),
            notified_at=parse_datetime(data.get("notified_at")),
            entered_at=parse_datetime(data.get("entered_at")),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
            created_at=parse_datetime(data.get("created_at")),
        )


__all__ = ["LineEntry", "LineEntryStatus"]
