from __future__ import annotations

from datetime import datetime
from typing import Any

from saleengine.domain.errors import StoreError, ValidationError
from saleengine.domain.models.base import parse_datetime

from ..connection import iso_utcnow, to_iso
from .base import BaseRepository

_ITEM_COLUMNS = """
    id, sale_id, title, status, price, auction_start_price, current_bid,
    bid_increment, auction_end_time, created_at
"""


class ItemRepository(BaseRepository):
    """Reads items and applies the conditional updates that guard them.

    ``current_bid`` and ``status`` are only ever changed through the
    compare-and-set methods of this class.
    """

    def get(self, item_id: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)
        )

    def add(
        self,
        item_id: str,
        *,
        sale_id: str | None = None,
        title: str | None = None,
        price: float | None = None,
        auction_start_price: float | None = None,
        bid_increment: float | None = None,
        auction_end_time: str | datetime | None = None,
        status: str = "AVAILABLE",
    ) -> None:
        """Insert an item; item creation itself belongs to the marketplace CRUD.

        ``auction_end_time`` is stored in the fixed-width UTC form so that the
        sweep's TEXT comparison agrees with the bid-time check.
        """
        self._execute(
            """
            INSERT INTO items (
                id, sale_id, title, status, price, auction_start_price,
                bid_increment, auction_end_time, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id,
                sale_id,
                title,
                status,
                price,
                auction_start_price,
                bid_increment,
                _normalize_end_time(auction_end_time),
                iso_utcnow(),
            ),
        )

    def update_current_bid(
        self, item_id: str, expected_current_bid: float | None, new_bid: float
    ) -> bool:
        """Raise ``current_bid`` only if it still holds the value read earlier."""
        return self._execute_conditional(
            """
            UPDATE items SET current_bid = ?
            WHERE id = ? AND status = 'AVAILABLE' AND current_bid IS ?
            """,
            (new_bid, item_id, expected_current_bid),
        )

    def claim_for_settlement(self, item_id: str) -> bool:
        """Move an open auction to AUCTION_ENDED; False if already claimed."""
        return self._execute_conditional(
            """
            UPDATE items SET status = 'AUCTION_ENDED'
            WHERE id = ? AND status = 'AVAILABLE'
            """,
            (item_id,),
        )

    def mark_sold(self, item_id: str, amount: float) -> bool:
        return self._execute_conditional(
            """
            UPDATE items SET status = 'SOLD', current_bid = ?
            WHERE id = ? AND status = 'AUCTION_ENDED'
            """,
            (amount, item_id),
        )

    def list_expired_auctions(self, now_iso: str, limit: int | None = None) -> list[str]:
        """Return ids of open auctions whose end time is at or before ``now_iso``."""
        query = """
            SELECT id FROM items
            WHERE status = 'AVAILABLE'
              AND auction_end_time IS NOT NULL
              AND auction_end_time <= ?
            ORDER BY auction_end_time, id
        """
        params: list[object] = [now_iso]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._execute(query, tuple(params)).fetchall()
        return [str(row[0]) for row in rows]

    def list_unresolved_settlements(self) -> list[str]:
        """Return ended auctions that have bids but no allocation yet."""
        rows = self._execute(
            """
            SELECT i.id FROM items i
            WHERE i.status = 'AUCTION_ENDED'
              AND EXISTS (SELECT 1 FROM bids b WHERE b.item_id = i.id)
              AND NOT EXISTS (SELECT 1 FROM allocations a WHERE a.item_id = i.id)
            ORDER BY i.auction_end_time, i.id
            """
        ).fetchall()
        return [str(row[0]) for row in rows]


def _normalize_end_time(value: str | datetime | None) -> str | None:
    try:
        parsed = parse_datetime(value)
    except StoreError as exc:
        raise ValidationError(f"Invalid auction end time: {value!r}") from exc
    return to_iso(parsed) if parsed is not None else None
