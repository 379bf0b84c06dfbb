"""Open the physical line of an estate sale.

Starting the line snapshots the sale's reachable subscribers into dense
positions ``1..N`` in one transaction, then tells every entry its position.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime

from saleengine.domain.errors import AlreadyStartedError, AuthorizationError, NotFoundError
from saleengine.domain.models import LineEntry, Sale, Subscriber
from saleengine.domain.models.base import as_utc
from saleengine.infrastructure.db import to_iso, transaction, utcnow
from saleengine.infrastructure.db.repositories import LineEntryRepository, SaleRepository
from saleengine.infrastructure.observability import (
    log_context,
    record_line_transition,
    trace_span,
)

from .base import BaseService, ConnectionFactory
from .notifications import Notification, NotificationBatchResult, NotificationDispatcher


@dataclass
class LineStartResult:
    entries: list[LineEntry] = field(default_factory=list)
    notifications: NotificationBatchResult = field(default_factory=NotificationBatchResult)


def load_sale(
    conn: sqlite3.Connection, sale_id: str, organizer_id: str | None = None
) -> Sale:
    """Load a sale, checking ownership when ``organizer_id`` is given."""
    row = SaleRepository(conn).get(sale_id)
    if row is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    sale = Sale.from_dict(row)
    if organizer_id is not None and not sale.is_managed_by(organizer_id):
        raise AuthorizationError(f"Not authorized to manage the line of sale {sale_id}")
    return sale


def position_message(sale: Sale, entry: LineEntry) -> str:
    return (
        f"You're in line for {sale.title or sale.id}. "
        f"Your position is {entry.position}. Reply STOP to unsubscribe."
    )


class LineQueue(BaseService):
    """Start the line of a sale exactly once."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        super().__init__(connection_factory)
        self._dispatcher = dispatcher

    def start_line(
        self,
        sale_id: str,
        now: datetime | None = None,
        organizer_id: str | None = None,
    ) -> LineStartResult:
        """Assign positions to every reachable subscriber and notify them.

        Raises:
            NotFoundError: the sale does not exist.
            AuthorizationError: ``organizer_id`` does not own the sale.
            AlreadyStartedError: the line of this sale was already started.
        """
        now = as_utc(now) if now is not None else utcnow()
        with log_context(sale_id=sale_id), trace_span("line.start", sale_id=sale_id):
            sale, entries = self._with_connection(
                lambda conn: self._start(conn, sale_id, now, organizer_id)
            )
            record_line_transition("started")
            self._logger.info("Line started with %d entries", len(entries))

            result = LineStartResult(entries=entries)
            if self._dispatcher is not None and entries:
                result.notifications = self._dispatcher.send_batch(
                    Notification(
                        user_id=entry.user_id,
                        contact=entry.contact,
                        message=position_message(sale, entry),
                        kind="line_position",
                    )
                    for entry in entries
                )
                if result.notifications.failed:
                    self._logger.warning(
                        "%d of %d position notifications failed",
                        len(result.notifications.failed),
                        len(entries),
                    )
        return result

    def _start(
        self,
        conn: sqlite3.Connection,
        sale_id: str,
        now: datetime,
        organizer_id: str | None,
    ) -> tuple[Sale, list[LineEntry]]:
        sales = SaleRepository(conn)
        line = LineEntryRepository(conn)
        with transaction(conn):
            sale = load_sale(conn, sale_id, organizer_id)
            if not sales.claim_line_start(sale_id, to_iso(now)):
                raise AlreadyStartedError(f"The line for sale {sale_id} has already started")
            subscribers = [
                Subscriber.from_dict(row)
                for row in sales.list_reachable_subscribers(sale_id)
            ]
            line.insert_batch(
                sale_id,
                (
                    (subscriber.user_id, subscriber.contact, position)
                    for position, subscriber in enumerate(subscribers, start=1)
                ),
                to_iso(now),
            )
            entries = [LineEntry.from_dict(row) for row in line.list_for_sale(sale_id)]
        return sale, entries
