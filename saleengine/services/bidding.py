"""Bid acceptance for auction items.

Bids are linearizable per item: the item's ``current_bid`` only moves through
a compare-and-set on the value that was validated, inside the same
transaction that appends the bid to the log.
"""

from __future__ import annotations

import math
import numbers
import sqlite3
from datetime import datetime

from saleengine.domain.errors import (
    AuctionClosedError,
    BidSupersededError,
    EngineError,
    InvalidBidError,
    NotAnAuctionError,
    NotFoundError,
    ValidationError,
)
from saleengine.domain.models import Bid, Item, ItemStatus
from saleengine.domain.models.base import as_utc
from saleengine.infrastructure.db import to_iso, transaction, utcnow
from saleengine.infrastructure.db.repositories import (
    BidRepository,
    ItemRepository,
    UserRepository,
)
from saleengine.infrastructure.observability import (
    log_context,
    record_bid,
    set_span_attribute,
    trace_span,
)

from .base import BaseService, ConnectionFactory
from .notifications import Notification, NotificationDispatcher

# A lost compare-and-set is re-validated this many times before giving up.
_MAX_RETRIES = 1


class BidLedger(BaseService):
    """Accept, reject and list bids on auction items."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        super().__init__(connection_factory)
        self._dispatcher = dispatcher

    def place_bid(
        self,
        item_id: str,
        user_id: str,
        amount: float,
        now: datetime | None = None,
    ) -> Bid:
        """Record a bid if it beats the current minimum.

        Raises:
            ValidationError: bad identifiers or amount, or the item is not an
                auction (:class:`NotAnAuctionError`) or the amount is below the
                minimum (:class:`InvalidBidError`).
            NotFoundError: the item does not exist.
            AuctionClosedError: the item no longer accepts bids.
            BidSupersededError: a concurrent bid moved the minimum past
                ``amount``.
            StoreError: the store failed or holds a malformed end time.
        """
        try:
            amount = _validate_request(item_id, user_id, amount)
        except ValidationError:
            record_bid("invalid")
            raise
        now = as_utc(now) if now is not None else utcnow()
        with log_context(item_id=item_id, user_id=user_id), trace_span(
            "bid.place", item_id=item_id, user_id=user_id, amount=amount
        ):
            try:
                bid, outbid = self._with_connection(
                    lambda conn: self._record(conn, item_id, user_id, amount, now)
                )
            except EngineError as exc:
                outcome = _outcome_for(exc)
                record_bid(outcome)
                set_span_attribute("bid.outcome", outcome)
                self._logger.info("Bid of %.2f rejected: %s", amount, exc)
                raise
            record_bid("accepted")
            set_span_attribute("bid.outcome", "accepted")
            self._logger.info("Bid of %.2f accepted", amount)
        if outbid is not None and self._dispatcher is not None:
            self._dispatcher.send_in_background(outbid)
        return bid

    def list_bids(self, item_id: str, limit: int = 100) -> list[Bid]:
        """Return the bids of an item in the order they were accepted."""

        def _list(conn: sqlite3.Connection) -> list[Bid]:
            _load_item(ItemRepository(conn), item_id)
            rows = BidRepository(conn).list_for_item(item_id, limit=limit)
            return [Bid.from_dict(row) for row in rows]

        return self._with_connection(_list)

    def minimum_bid(self, item_id: str) -> float:
        """Return the lowest amount the next bid on ``item_id`` may have."""
        item = self._with_connection(lambda conn: _load_item(ItemRepository(conn), item_id))
        if not item.is_auction:
            raise NotAnAuctionError(f"Item {item_id} is not an auction")
        return item.minimum_bid

    def _record(
        self,
        conn: sqlite3.Connection,
        item_id: str,
        user_id: str,
        amount: float,
        now: datetime,
    ) -> tuple[Bid, Notification | None]:
        items = ItemRepository(conn)
        bids = BidRepository(conn)
        for attempt in range(_MAX_RETRIES + 1):
            item = _load_item(items, item_id)
            _check_open(item, now)
            minimum = item.minimum_bid
            if amount < minimum:
                if attempt == 0:
                    raise InvalidBidError(amount, minimum)
                raise BidSupersededError(amount, minimum)

            with transaction(conn):
                if items.update_current_bid(item_id, item.current_bid, amount):
                    previous = bids.highest_for_item(item_id)
                    created_at = to_iso(now)
                    bid_id = bids.insert(item_id, user_id, amount, created_at)
                    bid = Bid(bid_id, item_id, user_id, amount, now)
                    return bid, self._outbid_notification(conn, item, previous, bid)
            self._logger.info("Current bid changed concurrently; re-validating")

        fresh = _load_item(items, item_id)
        _check_open(fresh, now)
        raise BidSupersededError(amount, fresh.minimum_bid)

    def _outbid_notification(
        self,
        conn: sqlite3.Connection,
        item: Item,
        previous: dict | None,
        bid: Bid,
    ) -> Notification | None:
        if self._dispatcher is None or previous is None:
            return None
        previous_user = str(previous["user_id"])
        if previous_user == bid.user_id:
            return None
        return Notification(
            user_id=previous_user,
            contact=UserRepository(conn).get_contact(previous_user),
            message=(
                f"You've been outbid on {item.title or item.id}. "
                f"The current bid is {bid.amount:.2f}."
            ),
            kind="outbid",
        )


def _validate_request(item_id: str, user_id: str, amount: object) -> float:
    if not item_id or not str(item_id).strip():
        raise ValidationError("Item id is required")
    if not user_id or not str(user_id).strip():
        raise ValidationError("User id is required")
    if isinstance(amount, bool) or not isinstance(amount, numbers.Real):
        raise ValidationError("Bid amount must be a number")
    value = float(amount)
    if not math.isfinite(value):
        raise ValidationError("Bid amount must be a finite number")
    if value <= 0:
        raise ValidationError("Bid amount must be positive")
    return value


def _load_item(items: ItemRepository, item_id: str) -> Item:
    row = items.get(item_id)
    if row is None:
        raise NotFoundError(f"Item {item_id} not found")
    return Item.from_dict(row)


def _check_open(item: Item, now: datetime) -> None:
    if item.accepts_bids(now):
        return
    if not item.is_auction:
        raise NotAnAuctionError(f"Item {item.id} is not an auction")
    if item.status != ItemStatus.AVAILABLE:
        raise AuctionClosedError(f"Auction for item {item.id} is closed")
    raise AuctionClosedError(f"Auction for item {item.id} has ended")


def _outcome_for(exc: EngineError) -> str:
    if isinstance(exc, InvalidBidError):
        return "too_low"
    if isinstance(exc, BidSupersededError):
        return "superseded"
    if isinstance(exc, AuctionClosedError):
        return "closed"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ValidationError):
        return "invalid"
    return "error"
