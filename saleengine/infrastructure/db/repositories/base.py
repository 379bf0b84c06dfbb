"""Shared query helpers for the store repositories."""

from __future__ import annotations

import sqlite3
from typing import Any

from saleengine.domain.errors import StoreError

Params = tuple[Any, ...]


def _as_dict(cur: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    return {column[0]: value for column, value in zip(cur.description, row)}


class BaseRepository:
    """Row access over one connection.

    Repositories never commit on their own: writes are grouped by the calling
    service inside :func:`~saleengine.infrastructure.db.transaction` so that
    multi-row changes land atomically. Every ``sqlite3.Error`` surfaces as
    :class:`~saleengine.domain.errors.StoreError`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _fetch_all_as_dicts(self, query: str, params: Params | None = None) -> list[dict[str, Any]]:
        cur = self._execute(query, params)
        return [_as_dict(cur, row) for row in cur.fetchall()]

    def _fetch_one_as_dict(self, query: str, params: Params | None = None) -> dict[str, Any] | None:
        cur = self._execute(query, params)
        row = cur.fetchone()
        return _as_dict(cur, row) if row else None

    def _fetch_scalar(self, query: str, params: Params | None = None) -> Any:
        row = self._execute(query, params).fetchone()
        return row[0] if row else None

    def _execute_insert(self, query: str, params: Params | None = None) -> int:
        """Run an INSERT and return the new row id (0 if nothing was inserted)."""
        cur = self._execute(query, params)
        return cur.lastrowid if cur.rowcount > 0 and cur.lastrowid else 0

    def _execute_conditional(self, query: str, params: Params | None = None) -> bool:
        """Run a compare-and-set UPDATE and report whether it applied.

        The ``WHERE`` clause of ``query`` must pin every value the caller read
        before deciding on the update. Zero affected rows means another writer
        changed the row first.

            >>> self._execute_conditional(
            ...     "UPDATE items SET status = 'AUCTION_ENDED' WHERE id = ? AND status = 'AVAILABLE'",
            ...     ("item-1",),
            ... )
            True
        """
        return self._execute(query, params).rowcount > 0

    def _execute(self, query: str, params: Params | None = None) -> sqlite3.Cursor:
        try:
            return self.conn.execute(query, params or ())
        except sqlite3.OperationalError as exc:
            # Busy timeouts and I/O problems; the caller may retry.
            raise StoreError(f"Store unavailable: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Store query failed: {exc}") from exc
