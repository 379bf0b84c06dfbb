from __future__ import annotations

from typing import Any

from ..connection import iso_utcnow
from .base import BaseRepository


class SaleRepository(BaseRepository):
    """Sale and subscriber access needed to run a sale's line."""

    def get(self, sale_id: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            "SELECT id, title, organizer_id, line_started_at FROM sales WHERE id = ?",
            (sale_id,),
        )

    def add(self, sale_id: str, title: str, organizer_id: str | None = None) -> None:
        self._execute(
            "INSERT INTO sales (id, title, organizer_id) VALUES (?, ?, ?)",
            (sale_id, title, organizer_id),
        )

    def add_subscriber(
        self,
        sale_id: str,
        user_id: str,
        *,
        phone: str | None = None,
        email: str | None = None,
        subscribed_at: str | None = None,
    ) -> None:
        self._execute(
            """
            INSERT INTO sale_subscribers (sale_id, user_id, phone, email, subscribed_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(sale_id, user_id) DO UPDATE SET
                phone = excluded.phone,
                email = excluded.email
            """,
            (sale_id, user_id, phone, email, subscribed_at or iso_utcnow()),
        )

    def claim_line_start(self, sale_id: str, started_at: str) -> bool:
        """Stamp ``line_started_at`` once; False if the line already started."""
        return self._execute_conditional(
            """
            UPDATE sales SET line_started_at = ?
            WHERE id = ? AND line_started_at IS NULL
            """,
            (started_at, sale_id),
        )

    def list_reachable_subscribers(self, sale_id: str) -> list[dict[str, Any]]:
        """Snapshot subscribers with a phone or email, in subscription order."""
        return self._fetch_all_as_dicts(
            """
            SELECT sale_id, user_id, phone, email, subscribed_at
            FROM sale_subscribers
            WHERE sale_id = ?
              AND (TRIM(COALESCE(phone, '')) != '' OR TRIM(COALESCE(email, '')) != '')
            ORDER BY subscribed_at ASC, id ASC
            """,
            (sale_id,),
        )
