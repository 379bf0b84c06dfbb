"""Tests for bid acceptance on auction items."""

from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from saleengine.domain.errors import (
    AuctionClosedError,
    BidSupersededError,
    InvalidBidError,
    NotAnAuctionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from saleengine.infrastructure.db import get_connection, transaction
from saleengine.infrastructure.db.repositories import ItemRepository
from saleengine.infrastructure.observability import get_metrics_summary
from saleengine.services import BidLedger

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _current_bid(db_path: Path, item_id: str) -> float | None:
    with get_connection(db_path) as conn:
        return ItemRepository(conn).get(item_id)["current_bid"]


def test_scenario_increasing_bids(db_path: Path, seed) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    ledger = BidLedger.from_sqlite_path(db_path)

    first = ledger.place_bid("item-1", "u1", 60, now=NOW)
    assert first.amount == 60.0
    assert ledger.minimum_bid("item-1") == 70.0

    ledger.place_bid("item-1", "u2", 75, now=NOW + timedelta(seconds=1))
    with pytest.raises(InvalidBidError) as excinfo:
        ledger.place_bid("item-1", "u3", 70, now=NOW + timedelta(seconds=2))

    assert excinfo.value.minimum == 85.0
    assert "85.00" in str(excinfo.value)
    assert _current_bid(db_path, "item-1") == 75.0
    assert [b.amount for b in ledger.list_bids("item-1")] == [60.0, 75.0]


def test_opening_bid_must_reach_start_price(db_path: Path, seed) -> None:
    seed.item("item-1", start_price=50.0)
    ledger = BidLedger.from_sqlite_path(db_path)
    with pytest.raises(InvalidBidError) as excinfo:
        ledger.place_bid("item-1", "u1", 49.99, now=NOW)
    assert excinfo.value.minimum == 50.0
    assert ledger.place_bid("item-1", "u1", 50, now=NOW).amount == 50.0


@pytest.mark.parametrize(
    "item_id,user_id,amount",
    [
        ("", "u1", 60),
        ("item-1", "  ", 60),
        ("item-1", "u1", 0),
        ("item-1", "u1", -5),
        ("item-1", "u1", math.nan),
        ("item-1", "u1", math.inf),
        ("item-1", "u1", "60"),
        ("item-1", "u1", True),
    ],
)
def test_rejects_malformed_requests(db_path: Path, seed, item_id, user_id, amount) -> None:
    seed.item("item-1")
    with pytest.raises(ValidationError):
        BidLedger.from_sqlite_path(db_path).place_bid(item_id, user_id, amount, now=NOW)
    assert _current_bid(db_path, "item-1") is None


def test_unknown_item(db_path: Path) -> None:
    with pytest.raises(NotFoundError):
        BidLedger.from_sqlite_path(db_path).place_bid("nope", "u1", 60, now=NOW)


def test_fixed_price_item_is_not_biddable(db_path: Path, seed) -> None:
    seed.item("lamp", start_price=None)
    with pytest.raises(NotAnAuctionError):
        BidLedger.from_sqlite_path(db_path).place_bid("lamp", "u1", 60, now=NOW)


def test_bid_at_or_after_end_time_is_closed(db_path: Path, seed) -> None:
    seed.item("item-1", ends_at=NOW)
    ledger = BidLedger.from_sqlite_path(db_path)
    with pytest.raises(AuctionClosedError):
        ledger.place_bid("item-1", "u1", 60, now=NOW)
    assert ledger.place_bid("item-1", "u1", 60, now=NOW - timedelta(seconds=1))


def test_bid_on_settled_item_is_closed(db_path: Path, seed) -> None:
    seed.item("item-1", status="AUCTION_ENDED")
    with pytest.raises(AuctionClosedError):
        BidLedger.from_sqlite_path(db_path).place_bid("item-1", "u1", 60, now=NOW)


def test_malformed_stored_end_time_is_not_open_ended(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn, transaction(conn):
        conn.execute("UPDATE items SET auction_end_time = 'soon' WHERE id = 'item-1'")

    with pytest.raises(StoreError):
        BidLedger.from_sqlite_path(db_path).place_bid("item-1", "u1", 60, now=NOW)
    assert _current_bid(db_path, "item-1") is None


def _racing_items(db_path: Path, competitor_amount: float) -> type[ItemRepository]:
    """Item repository that lets a competing bid commit right after the first read."""
    state = {"raced": False}

    class RacingItemRepository(ItemRepository):
        def get(self, item_id: str):
            row = super().get(item_id)
            if row is not None and not state["raced"]:
                state["raced"] = True
                with get_connection(db_path) as other, transaction(other):
                    ItemRepository(other).update_current_bid(
                        item_id, row["current_bid"], competitor_amount
                    )
            return row

    return RacingItemRepository


def test_lost_race_revalidates_and_succeeds(db_path: Path, seed, monkeypatch) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    monkeypatch.setattr(
        "saleengine.services.bidding.ItemRepository", _racing_items(db_path, 60.0)
    )

    bid = BidLedger.from_sqlite_path(db_path).place_bid("item-1", "u1", 90, now=NOW)

    assert bid.amount == 90.0
    assert _current_bid(db_path, "item-1") == 90.0


def test_lost_race_below_new_minimum_is_superseded(db_path: Path, seed, monkeypatch) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    monkeypatch.setattr(
        "saleengine.services.bidding.ItemRepository", _racing_items(db_path, 80.0)
    )
    ledger = BidLedger.from_sqlite_path(db_path)

    with pytest.raises(BidSupersededError) as excinfo:
        ledger.place_bid("item-1", "u1", 60, now=NOW)

    assert excinfo.value.minimum == 90.0
    assert _current_bid(db_path, "item-1") == 80.0
    assert ledger.list_bids("item-1") == []



def test_concurrent_bids_keep_the_maximum(db_path: Path, seed) -> None:
    seed.item("item-1", start_price=10.0, increment=1.0)
    ledger = BidLedger.from_sqlite_path(db_path)
    amounts = [10.0 + 3 * i for i in range(24)]
    accepted: list[float] = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker(chunk: list[float]) -> None:
        barrier.wait()
        for amount in chunk:
            try:
                ledger.place_bid("item-1", f"user-{amount}", amount)
            except (InvalidBidError, BidSupersededError):
                continue
            with lock:
                accepted.append(amount)

    threads = [
        threading.Thread(target=worker, args=(amounts[i::8],)) for i in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    history = [bid.amount for bid in sorted(ledger.list_bids("item-1"), key=lambda b: b.id)]
    assert sorted(history) == sorted(accepted)
    assert _current_bid(db_path, "item-1") == max(accepted) == history[-1]
    assert history[0] >= 10.0
    for previous, current in zip(history, history[1:]):
        assert current >= previous + 1.0


def test_outbid_user_is_notified(db_path: Path, seed, dispatcher, notifier) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    seed.user("u1", phone="+15550001")
    seed.user("u2", phone="+15550002")
    ledger = BidLedger.from_sqlite_path(db_path, dispatcher=dispatcher)

    ledger.place_bid("item-1", "u1", 60, now=NOW)
    ledger.place_bid("item-1", "u1", 70, now=NOW)
    ledger.place_bid("item-1", "u2", 80, now=NOW)
    dispatcher.shutdown(wait=True)

    assert notifier.messages_to("+15550002") == []
    (message,) = notifier.messages_to("+15550001")
    assert "outbid" in message and "80.00" in message


def test_notifier_failure_does_not_fail_the_bid(db_path: Path, seed, make_dispatcher) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    seed.user("u1", phone="+15550001")
    failing, _ = make_dispatcher(fail_for={"+15550001"})
    ledger = BidLedger.from_sqlite_path(db_path, dispatcher=failing)

    ledger.place_bid("item-1", "u1", 60, now=NOW)
    assert ledger.place_bid("item-1", "u2", 70, now=NOW).amount == 70.0
    failing.shutdown(wait=True)
    counters = get_metrics_summary()["counters"]
    assert counters["notifications_total"] == {"kind=outbid,outcome=failed": 1.0}


def test_bid_metrics_by_outcome(db_path: Path, seed) -> None:
    seed.item("item-1", start_price=50.0, increment=10.0)
    ledger = BidLedger.from_sqlite_path(db_path)
    ledger.place_bid("item-1", "u1", 60, now=NOW)
    with pytest.raises(InvalidBidError):
        ledger.place_bid("item-1", "u2", 65, now=NOW)
    with pytest.raises(ValidationError):
        ledger.place_bid("item-1", "u2", -1, now=NOW)

    counters = get_metrics_summary()["counters"]["bids_total"]
    assert counters == {
        "outcome=accepted": 1.0,
        "outcome=too_low": 1.0,
        "outcome=invalid": 1.0,
    }
