"""Item domain model with auction business rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .base import as_utc, parse_datetime

DEFAULT_BID_INCREMENT = 1.0


class ItemStatus(str, Enum):
    """Enumeration of item states relevant to allocation."""

    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"
    AUCTION_ENDED = "AUCTION_ENDED"
    RESERVED = "RESERVED"


@dataclass
class Item:
    """Domain model representing an auctionable item of a sale.

    ``current_bid`` only ever increases, and once the status leaves
    ``AVAILABLE`` the item no longer accepts bids.
    """

    id: str
    status: ItemStatus = ItemStatus.AVAILABLE
    sale_id: str | None = None
    title: str | None = None
    auction_start_price: float | None = None
    current_bid: float | None = None
    bid_increment: float | None = None
    auction_end_time: datetime | None = None

    @property
    def is_auction(self) -> bool:
        """Check if the item is sold through bidding rather than fixed price."""
        return self.auction_start_price is not None

    @property
    def effective_increment(self) -> float:
        if self.bid_increment is None or self.bid_increment <= 0:
            return DEFAULT_BID_INCREMENT
        return self.bid_increment

    @property
    def minimum_bid(self) -> float | None:
        """Return the lowest amount the next bid may have."""
        if self.current_bid is not None:
            return round(self.current_bid + self.effective_increment, 2)
        return self.auction_start_price

    def is_expired(self, now: datetime) -> bool:
        """Check if the auction end time has been reached.

        Items without an end time are open-ended and never expire.
        """
        if self.auction_end_time is None:
            return False
        return as_utc(now) >= as_utc(self.auction_end_time)

    def accepts_bids(self, now: datetime) -> bool:
        return (
            self.is_auction
            and self.status == ItemStatus.AVAILABLE
            and not self.is_expired(now)
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        """Create an Item from a dictionary (e.g., from database row)."""
        return cls(
            id=str(data["id"]),
            status=ItemStatus(data.get("status") or ItemStatus.AVAILABLE.value),
            sale_id=data.get("sale_id"),
            title=data.get("title"),
            auction_start_price=data.get("auction_start_price"),
            current_bid=data.get("current_bid"),
            bid_increment=data.get("bid_increment"),
            auction_end_time=parse_datetime(data.get("auction_end_time")),
        )


__all__ = ["DEFAULT_BID_INCREMENT", "Item", "ItemStatus"]
