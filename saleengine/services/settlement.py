"""Close expired auctions and allocate them to the winning bidder.

Settlement is claim-then-resolve: an expired item is first moved from
``AVAILABLE`` to ``AUCTION_ENDED`` by a conditional update, which only one
sweeper can win, and only the winner goes on to allocate it. An item that was
claimed but not resolved is picked up again by :meth:`reconcile`.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable

from saleengine.domain.errors import StoreError
from saleengine.domain.models import Bid
from saleengine.domain.models.base import as_utc
from saleengine.infrastructure.db import to_iso, transaction, utcnow
from saleengine.infrastructure.db.repositories import (
    AllocationRepository,
    BidRepository,
    ItemRepository,
    UserRepository,
)
from saleengine.infrastructure.observability import (
    log_context,
    log_exception,
    record_settlement,
    set_span_attribute,
    sweep_timer,
    trace_span,
)

from .base import BaseService, ConnectionFactory
from .notifications import Notification, NotificationDispatcher


@dataclass(frozen=True)
class SoldItem:
    item_id: str
    user_id: str
    amount: float


@dataclass
class SettlementReport:
    """Outcome of a sweep.

    ``closed`` lists every item this run claimed, ``sold`` those allocated to
    a winner and ``failed`` those claimed but left unresolved.
    """

    closed: list[str] = field(default_factory=list)
    sold: list[SoldItem] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def merge(self, other: "SettlementReport") -> "SettlementReport":
        sold = self.sold + other.sold
        resolved = _ids(sold)
        return SettlementReport(
            closed=list(dict.fromkeys(self.closed + other.closed)),
            sold=sold,
            failed=[
                item_id
                for item_id in dict.fromkeys(self.failed + other.failed)
                if item_id not in resolved
            ],
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "closed": list(self.closed),
            "sold": [asdict(sold) for sold in self.sold],
            "failed": list(self.failed),
        }


AllocationHook = Callable[[SoldItem], None]


class AuctionSettlementScheduler(BaseService):
    """Sweep expired auctions into allocations."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        dispatcher: NotificationDispatcher | None = None,
        on_allocation: AllocationHook | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(connection_factory)
        self._dispatcher = dispatcher
        self._on_allocation = on_allocation
        self._batch_size = batch_size

    def sweep(self, now: datetime | None = None) -> SettlementReport:
        """Claim and resolve every auction that has ended by ``now``."""
        now = as_utc(now) if now is not None else utcnow()
        report = SettlementReport()
        try:
            with sweep_timer(), trace_span("settlement.sweep"), self._connect() as conn:
                candidates = ItemRepository(conn).list_expired_auctions(
                    to_iso(now), limit=self._batch_size
                )
                for item_id in candidates:
                    with log_context(item_id=item_id):
                        if not self._claim(conn, item_id):
                            continue
                        report.closed.append(item_id)
                        self._resolve_into(conn, item_id, now, report)
                set_span_attribute("settlement.closed", len(report.closed))
                set_span_attribute("settlement.sold", len(report.sold))
        finally:
            # Allocations are committed one by one; winners of this batch are
            # notified and charged even when a later claim fails.
            self._after_commit(report.sold)

        no_bids = len(report.closed) - len(report.sold) - len(report.failed)
        record_settlement("sold", len(report.sold))
        record_settlement("no_bids", no_bids)
        record_settlement("failed", len(report.failed))
        if report.closed:
            self._logger.info(
                "Sweep closed %d auctions: %d sold, %d without bids, %d failed",
                len(report.closed),
                len(report.sold),
                no_bids,
                len(report.failed),
            )
        return report

    def reconcile(self, now: datetime | None = None) -> SettlementReport:
        """Resolve ended auctions that have bids but no allocation."""
        now = as_utc(now) if now is not None else utcnow()
        report = SettlementReport()
        with trace_span("settlement.reconcile"), self._connect() as conn:
            for item_id in ItemRepository(conn).list_unresolved_settlements():
                with log_context(item_id=item_id):
                    self._resolve_into(conn, item_id, now, report)
        if report.sold:
            self._logger.info("Reconciled %d unresolved auctions", len(report.sold))
        record_settlement("reconciled", len(report.sold))
        record_settlement("failed", len(report.failed))
        self._after_commit(report.sold)
        return report

    def run_settlement_sweep(self, now: datetime | None = None) -> SettlementReport:
        """Sweep, then reconcile anything left unresolved."""
        return self.sweep(now).merge(self.reconcile(now))

    def _claim(self, conn: sqlite3.Connection, item_id: str) -> bool:
        items = ItemRepository(conn)
        try:
            with transaction(conn):
                return items.claim_for_settlement(item_id)
        except StoreError as exc:
            self._logger.warning("Claim failed, retrying once: %s", exc)
        with transaction(conn):
            return items.claim_for_settlement(item_id)

    def _resolve_into(
        self,
        conn: sqlite3.Connection,
        item_id: str,
        now: datetime,
        report: SettlementReport,
    ) -> None:
        try:
            sold = self._resolve(conn, item_id, now)
        except StoreError as exc:
            log_exception(self._logger, "Failed to resolve ended auction", exc)
            report.failed.append(item_id)
            return
        if sold is not None:
            report.sold.append(sold)

    def _resolve(
        self, conn: sqlite3.Connection, item_id: str, now: datetime
    ) -> SoldItem | None:
        """Allocate a claimed item to its highest bid.

        Returns ``None`` when there is no bid, or when another sweeper already
        allocated the item.
        """
        with transaction(conn):
            row = BidRepository(conn).highest_for_item(item_id)
            if row is None:
                return None
            winner = Bid.from_dict(row)
            inserted = AllocationRepository(conn).insert_if_absent(
                item_id, winner.user_id, winner.amount, to_iso(now)
            )
            ItemRepository(conn).mark_sold(item_id, winner.amount)
        if not inserted:
            return None
        self._logger.info("Allocated to %s for %.2f", winner.user_id, winner.amount)
        return SoldItem(item_id, winner.user_id, winner.amount)

    def _after_commit(self, sold_items: list[SoldItem]) -> None:
        if not sold_items:
            return
        if self._dispatcher is not None:
            notifications = self._with_connection(
                lambda conn: [_won_notification(conn, sold) for sold in sold_items]
            )
            for notification in notifications:
                self._dispatcher.send_in_background(notification)
        if self._on_allocation is not None:
            for sold in sold_items:
                try:
                    self._on_allocation(sold)
                except Exception as exc:
                    log_exception(
                        self._logger,
                        "Allocation hook failed",
                        exc,
                        item_id=sold.item_id,
                    )


def _won_notification(conn: sqlite3.Connection, sold: SoldItem) -> Notification:
    item = ItemRepository(conn).get(sold.item_id) or {}
    title = item.get("title") or sold.item_id
    return Notification(
        user_id=sold.user_id,
        contact=UserRepository(conn).get_contact(sold.user_id),
        message=f"You won {title} for {sold.amount:.2f}. Please complete your payment.",
        kind="auction_won",
    )


def _ids(sold_items: list[SoldItem]) -> set[str]:
    return {sold.item_id for sold in sold_items}
