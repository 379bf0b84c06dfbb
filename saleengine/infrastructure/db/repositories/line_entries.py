from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .base import BaseRepository

_ENTRY_COLUMNS = """
    id, sale_id, user_id, contact, position, status,
    notified_at, entered_at, cancelled_at, created_at
"""

# Timestamp column stamped by each target status.
_STAMP_COLUMNS = {
    "CALLED": "notified_at",
    "SERVED": "entered_at",
    "CANCELLED": "cancelled_at",
}


class LineEntryRepository(BaseRepository):
    def insert_batch(
        self,
        sale_id: str,
        entries: Iterable[tuple[str, str | None, int]],
        created_at: str,
    ) -> list[int]:
        """Insert WAITING entries given as ``(user_id, contact, position)``.

        Must run inside the caller's transaction so the batch is all-or-nothing.
        """
        ids: list[int] = []
        for user_id, contact, position in entries:
            ids.append(
                self._execute_insert(
                    """
                    INSERT INTO line_entries
                        (sale_id, user_id, contact, position, status, created_at)
                    VALUES (?, ?, ?, ?, 'WAITING', ?)
                    """,
                    (sale_id, user_id, contact, position, created_at),
                )
            )
        return ids

    def get(self, entry_id: int) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            f"SELECT {_ENTRY_COLUMNS} FROM line_entries WHERE id = ?", (entry_id,)
        )

    def next_waiting(self, sale_id: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            f"""
            SELECT {_ENTRY_COLUMNS} FROM line_entries
            WHERE sale_id = ? AND status = 'WAITING'
            ORDER BY position ASC
            LIMIT 1
            """,
            (sale_id,),
        )

    def current_called(self, sale_id: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            f"""
            SELECT {_ENTRY_COLUMNS} FROM line_entries
            WHERE sale_id = ? AND status = 'CALLED'
            ORDER BY position ASC
            LIMIT 1
            """,
            (sale_id,),
        )

    def transition(
        self, entry_id: int, from_status: str, to_status: str, stamped_at: str
    ) -> bool:
        """Move an entry to ``to_status`` only if it is still ``from_status``."""
        stamp_column = _STAMP_COLUMNS[to_status]
        return self._execute_conditional(
            f"""
            UPDATE line_entries SET status = ?, {stamp_column} = ?
            WHERE id = ? AND status = ?
            """,
            (to_status, stamped_at, entry_id, from_status),
        )

    def list_for_sale(self, sale_id: str) -> list[dict[str, Any]]:
        return self._fetch_all_as_dicts(
            f"""
            SELECT {_ENTRY_COLUMNS} FROM line_entries
            WHERE sale_id = ?
            ORDER BY position ASC
            """,
            (sale_id,),
        )
