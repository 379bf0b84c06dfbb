from __future__ import annotations

from typing import Any

from .base import BaseRepository


class BidRepository(BaseRepository):
    """Append-only access to the bid log."""

    def insert(
        self, item_id: str, user_id: str, amount: float, created_at: str
    ) -> int:
        return self._execute_insert(
            """
            INSERT INTO bids (item_id, user_id, amount, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (item_id, user_id, amount, created_at),
        )

    def highest_for_item(self, item_id: str) -> dict[str, Any] | None:
        """Return the winning bid: highest amount, earliest bid on ties."""
        return self._fetch_one_as_dict(
            """
            SELECT id, item_id, user_id, amount, created_at
            FROM bids
            WHERE item_id = ?
            ORDER BY amount DESC, created_at ASC, id ASC
            LIMIT 1
            """,
            (item_id,),
        )

    def list_for_item(self, item_id: str, limit: int = 100) -> list[dict[str, Any]]:
        """List bids of an item in audit (creation) order."""
        return self._fetch_all_as_dicts(
            """
            SELECT id, item_id, user_id, amount, created_at
            FROM bids
            WHERE item_id = ?
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (item_id, limit),
        )
