"""
Centralized DTOs and input/output models for Saleengine services.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from saleengine.domain.models import Allocation, Bid, LineEntry

# --- Event Publishing Types ---
EventPayload = dict[str, object]
EventPublisher = Callable[[EventPayload], Awaitable[None]]


async def noop_event_publisher(_: EventPayload) -> None:
    """Default no-op event publisher for services that don't need events."""
    pass


# --- Bid DTOs ---
class BidRequestDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    amount: float


class BidDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    item_id: str
    user_id: str
    amount: float
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, bid: Bid) -> "BidDTO":
        return cls(
            id=bid.id,
            item_id=bid.item_id,
            user_id=bid.user_id,
            amount=bid.amount,
            created_at=bid.created_at,
        )


class AllocationDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    item_id: str
    user_id: str
    amount: float
    status: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, allocation: Allocation) -> "AllocationDTO":
        return cls(
            id=allocation.id,
            item_id=allocation.item_id,
            user_id=allocation.user_id,
            amount=allocation.amount,
            status=allocation.status.value,
            created_at=allocation.created_at,
        )


# --- Settlement DTOs ---
class SoldItemDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_id: str
    user_id: str
    amount: float


class SettlementReportDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    closed: list[str] = []
    sold: list[SoldItemDTO] = []
    failed: list[str] = []


class SweepRequestDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    now: datetime | None = None


class RunnerStartRequestDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval_seconds: float | None = None


# --- Line DTOs ---
class OrganizerRequestDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organizer_id: str | None = None


class LineEntryDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    sale_id: str
    user_id: str
    position: int
    status: str
    notified_at: datetime | None = None
    entered_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_model(cls, entry: LineEntry) -> "LineEntryDTO":
        return cls(
            id=entry.id,
            sale_id=entry.sale_id,
            user_id=entry.user_id,
            position=entry.position,
            status=entry.status.value,
            notified_at=entry.notified_at,
            entered_at=entry.entered_at,
            cancelled_at=entry.cancelled_at,
        )


class NotificationResultDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str
    delivered: bool
    reason: str | None = None


class LineStartDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: list[LineEntryDTO]
    notified: int
    failed_notifications: list[NotificationResultDTO] = []


class LineStatusDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sale_id: str
    entries: list[LineEntryDTO]
    waiting: int
    called: LineEntryDTO | None = None
