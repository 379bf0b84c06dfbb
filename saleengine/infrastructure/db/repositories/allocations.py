from __future__ import annotations

from typing import Any

from .base import BaseRepository


class AllocationRepository(BaseRepository):
    def insert_if_absent(
        self, item_id: str, user_id: str, amount: float, created_at: str
    ) -> bool:
        """Create the allocation of an item unless one already exists.

        ``allocations.item_id`` is unique, so concurrent or repeated settlement
        of the same item yields a single row.
        """
        cur = self._execute(
            """
            INSERT OR IGNORE INTO allocations (item_id, user_id, amount, status, created_at)
            VALUES (?, ?, ?, 'PENDING', ?)
            """,
            (item_id, user_id, amount, created_at),
        )
        return cur.rowcount > 0

    def get_for_item(self, item_id: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            """
            SELECT id, item_id, user_id, amount, status, created_at
            FROM allocations WHERE item_id = ?
            """,
            (item_id,),
        )

    def count_for_item(self, item_id: str) -> int:
        return int(
            self._fetch_scalar(
                "SELECT COUNT(*) FROM allocations WHERE item_id = ?", (item_id,)
            )
            or 0
        )
