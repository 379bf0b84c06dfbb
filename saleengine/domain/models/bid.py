"""Bid and allocation records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .base import parse_datetime


@dataclass(frozen=True)
class Bid:
    """An accepted bid. Bids are append-only and never edited."""

    id: int
    item_id: str
    user_id: str
    amount: float
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        return cls(
            id=int(data["id"]),
            item_id=str(data["item_id"]),
            user_id=str(data["user_id"]),
            amount=float(data["amount"]),
            created_at=parse_datetime(data.get("created_at")),
        )


class AllocationStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Allocation:
    """The grant of an item to a single user (a purchase)."""

    id: int
    item_id: str
    user_id: str
    amount: float
    status: AllocationStatus = AllocationStatus.PENDING
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Allocation":
        return cls(
            id=int(data["id"]),
            item_id=str(data["item_id"]),
            user_id=str(data["user_id"]),
            amount=float(data["amount"]),
            status=AllocationStatus(data.get("status") or AllocationStatus.PENDING.value),
            created_at=parse_datetime(data.get("created_at")),
        )


__all__ = ["Allocation", "AllocationStatus", "Bid"]
