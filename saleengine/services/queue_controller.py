"""Move people through a started line.

Every transition is a conditional update on the entry's current status, so
concurrent organizers can never call, serve or cancel the same entry twice.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from saleengine.domain.errors import (
    CallInProgressError,
    EmptyQueueError,
    InvalidTransitionError,
    NotFoundError,
)
from saleengine.domain.models import LineEntry, LineEntryStatus
from saleengine.domain.models.base import as_utc
from saleengine.infrastructure.db import to_iso, transaction, utcnow
from saleengine.infrastructure.db.repositories import LineEntryRepository
from saleengine.infrastructure.observability import (
    log_context,
    record_line_transition,
    trace_span,
)

from .base import BaseService, ConnectionFactory
from .line_queue import load_sale
from .notifications import Notification, NotificationDispatcher


class QueueController(BaseService):
    """Call, serve and cancel line entries."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        dispatcher: NotificationDispatcher | None = None,
        single_called_entry: bool = True,
    ) -> None:
        super().__init__(connection_factory)
        self._dispatcher = dispatcher
        self._single_called_entry = single_called_entry

    def call_next(
        self,
        sale_id: str,
        now: datetime | None = None,
        organizer_id: str | None = None,
    ) -> LineEntry:
        """Call the waiting entry with the smallest position."""
        now = as_utc(now) if now is not None else utcnow()
        with log_context(sale_id=sale_id), trace_span("line.call_next", sale_id=sale_id):
            entry, title = self._with_connection(
                lambda conn: self._call_next(conn, sale_id, now, organizer_id)
            )
            record_line_transition("called")
            self._logger.info("Called position %d", entry.position)
        if self._dispatcher is not None:
            self._dispatcher.send_in_background(
                Notification(
                    user_id=entry.user_id,
                    contact=entry.contact,
                    message=(
                        f"You're next in line for {title}! "
                        "Please proceed to the check-in desk."
                    ),
                    kind="line_called",
                )
            )
        return entry

    def mark_served(
        self,
        entry_id: int,
        now: datetime | None = None,
        organizer_id: str | None = None,
    ) -> LineEntry:
        """Record that a called entry entered the sale."""
        return self._transition(entry_id, LineEntryStatus.SERVED, now, organizer_id)

    def cancel(
        self,
        entry_id: int,
        now: datetime | None = None,
        organizer_id: str | None = None,
    ) -> LineEntry:
        """Take a waiting or called entry out of the line."""
        return self._transition(entry_id, LineEntryStatus.CANCELLED, now, organizer_id)

    def get_status(self, sale_id: str) -> list[LineEntry]:
        """Return all entries of a sale ordered by position."""

        def _status(conn: sqlite3.Connection) -> list[LineEntry]:
            load_sale(conn, sale_id)
            rows = LineEntryRepository(conn).list_for_sale(sale_id)
            return [LineEntry.from_dict(row) for row in rows]

        return self._with_connection(_status)

    def _call_next(
        self,
        conn: sqlite3.Connection,
        sale_id: str,
        now: datetime,
        organizer_id: str | None,
    ) -> tuple[LineEntry, str]:
        entries = LineEntryRepository(conn)
        with transaction(conn):
            sale = load_sale(conn, sale_id, organizer_id)
            if self._single_called_entry:
                called = entries.current_called(sale_id)
                if called is not None:
                    raise CallInProgressError(
                        f"Position {called['position']} is still called; "
                        "mark them served or cancel them first"
                    )
            row = entries.next_waiting(sale_id)
            if row is None:
                raise EmptyQueueError("No one is waiting in line")
            if not entries.transition(
                row["id"],
                LineEntryStatus.WAITING.value,
                LineEntryStatus.CALLED.value,
                to_iso(now),
            ):
                raise InvalidTransitionError(
                    f"Line entry {row['id']} is no longer waiting"
                )
            entry = LineEntry.from_dict(entries.get(row["id"]))
        return entry, sale.title or sale.id

    def _transition(
        self,
        entry_id: int,
        target: LineEntryStatus,
        now: datetime | None,
        organizer_id: str | None,
    ) -> LineEntry:
        now = as_utc(now) if now is not None else utcnow()
        with log_context(entry_id=entry_id), trace_span(
            "line.transition", entry_id=entry_id, target=target.value
        ):
            with self._connect() as conn, transaction(conn):
                entries = LineEntryRepository(conn)
                row = entries.get(entry_id)
                if row is None:
                    raise NotFoundError(f"Line entry {entry_id} not found")
                entry = LineEntry.from_dict(row)
                if organizer_id is not None:
                    load_sale(conn, entry.sale_id, organizer_id)
                if not entry.status.can_transition_to(target) or not entries.transition(
                    entry_id, entry.status.value, target.value, to_iso(now)
                ):
                    raise InvalidTransitionError(
                        f"Line entry {entry_id} is {entry.status.value} "
                        f"and cannot become {target.value}"
                    )
                updated = LineEntry.from_dict(entries.get(entry_id))
            record_line_transition(target.value.lower())
            self._logger.info("Position %d is now %s", updated.position, target.value)
        return updated
