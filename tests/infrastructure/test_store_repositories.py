"""Tests for the conditional updates the ledger store exposes."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from saleengine.domain.errors import StoreError, ValidationError
from saleengine.domain.models import Subscriber
from saleengine.infrastructure.db import get_connection, to_iso, transaction
from saleengine.infrastructure.db.repositories import (
    AllocationRepository,
    BidRepository,
    ItemRepository,
    LineEntryRepository,
    SaleRepository,
    UserRepository,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_update_current_bid_is_compare_and_set(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn:
        items = ItemRepository(conn)
        assert items.update_current_bid("item-1", None, 60.0)
        # A writer that validated against the old value loses.
        assert not items.update_current_bid("item-1", None, 70.0)
        assert items.update_current_bid("item-1", 60.0, 75.0)
        conn.commit()
        assert items.get("item-1")["current_bid"] == 75.0


def test_claim_for_settlement_succeeds_once(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn:
        items = ItemRepository(conn)
        assert items.claim_for_settlement("item-1")
        assert not items.claim_for_settlement("item-1")
        assert not items.update_current_bid("item-1", None, 60.0)
        assert items.get("item-1")["status"] == "AUCTION_ENDED"


def test_mark_sold_requires_claim(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn:
        items = ItemRepository(conn)
        assert not items.mark_sold("item-1", 60.0)
        items.claim_for_settlement("item-1")
        assert items.mark_sold("item-1", 60.0)
        assert items.get("item-1")["status"] == "SOLD"


def test_list_expired_auctions(db_path: Path, seed) -> None:
    seed.item("ended", ends_at=NOW - timedelta(minutes=5))
    seed.item("ends-now", ends_at=NOW)
    seed.item("future", ends_at=NOW + timedelta(minutes=5))
    seed.item("open-ended", ends_at=None)
    seed.item("fixed", start_price=None, ends_at=NOW - timedelta(days=1), status="SOLD")
    with get_connection(db_path) as conn:
        expired = ItemRepository(conn).list_expired_auctions(to_iso(NOW))
    assert expired == ["ended", "ends-now"]


def test_add_stores_end_time_in_utc(db_path: Path) -> None:
    with get_connection(db_path) as conn:
        items = ItemRepository(conn)
        items.add("offset", auction_start_price=10.0, auction_end_time="2026-05-01T13:30:00+02:00")
        items.add("later", auction_start_price=10.0, auction_end_time="2026-05-01T12:30:00Z")
        assert items.get("offset")["auction_end_time"] == "2026-05-01T11:30:00.000000Z"
        assert items.list_expired_auctions(to_iso(NOW)) == ["offset"]


def test_add_rejects_malformed_end_time(db_path: Path) -> None:
    with get_connection(db_path) as conn:
        with pytest.raises(ValidationError):
            ItemRepository(conn).add("item-1", auction_start_price=10.0, auction_end_time="next friday")
        assert ItemRepository(conn).get("item-1") is None


def test_highest_bid_breaks_ties_by_earliest(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn:
        bids = BidRepository(conn)
        bids.insert("item-1", "late", 80.0, to_iso(NOW + timedelta(seconds=2)))
        bids.insert("item-1", "early", 80.0, to_iso(NOW + timedelta(seconds=1)))
        bids.insert("item-1", "low", 60.0, to_iso(NOW))
        assert bids.highest_for_item("item-1")["user_id"] == "early"
        assert [b["user_id"] for b in bids.list_for_item("item-1")] == [
            "low",
            "early",
            "late",
        ]


def test_allocation_insert_is_idempotent(db_path: Path, seed) -> None:
    seed.item("item-1")
    with get_connection(db_path) as conn:
        allocations = AllocationRepository(conn)
        assert allocations.insert_if_absent("item-1", "u1", 75.0, to_iso(NOW))
        assert not allocations.insert_if_absent("item-1", "u2", 90.0, to_iso(NOW))
        assert allocations.count_for_item("item-1") == 1
        row = allocations.get_for_item("item-1")
    assert row["user_id"] == "u1"
    assert row["status"] == "PENDING"


def test_unresolved_settlements_need_bids_and_no_allocation(db_path: Path, seed) -> None:
    for item_id in ("with-bid", "no-bid", "allocated"):
        seed.item(item_id)
    with get_connection(db_path) as conn, transaction(conn):
        items = ItemRepository(conn)
        bids = BidRepository(conn)
        for item_id in ("with-bid", "no-bid", "allocated"):
            items.claim_for_settlement(item_id)
        bids.insert("with-bid", "u1", 60.0, to_iso(NOW))
        bids.insert("allocated", "u1", 60.0, to_iso(NOW))
        AllocationRepository(conn).insert_if_absent("allocated", "u1", 60.0, to_iso(NOW))
    with get_connection(db_path) as conn:
        assert ItemRepository(conn).list_unresolved_settlements() == ["with-bid"]


def test_line_start_claim_and_subscriber_snapshot(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    seed.subscriber("b", phone="+1555000002", minutes=2)
    seed.subscriber("a", phone="+1555000001", minutes=1)
    seed.subscriber("no-contact", minutes=3)
    seed.subscriber("c", email="c@example.com", minutes=4)
    with get_connection(db_path) as conn:
        sales = SaleRepository(conn)
        assert sales.claim_line_start("sale-1", to_iso(NOW))
        assert not sales.claim_line_start("sale-1", to_iso(NOW))
        reachable = [row["user_id"] for row in sales.list_reachable_subscribers("sale-1")]
    assert reachable == ["a", "b", "c"]


def test_blank_contacts_are_not_reachable(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    seed.subscriber("spaces", phone="   ", email=" ", minutes=1)
    seed.subscriber("mail", phone="  ", email="mail@example.com", minutes=2)
    with get_connection(db_path) as conn:
        rows = SaleRepository(conn).list_reachable_subscribers("sale-1")
    assert [Subscriber.from_dict(row).contact for row in rows] == ["mail@example.com"]


def test_line_entry_positions_are_unique_per_sale(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    with get_connection(db_path) as conn:
        entries = LineEntryRepository(conn)
        entries.insert_batch("sale-1", [("a", None, 1)], to_iso(NOW))
        with pytest.raises(StoreError):
            entries.insert_batch("sale-1", [("b", None, 1)], to_iso(NOW))


def test_line_entry_transition_stamps_column(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    with get_connection(db_path) as conn:
        entries = LineEntryRepository(conn)
        (entry_id,) = entries.insert_batch("sale-1", [("a", "+1555", 1)], to_iso(NOW))
        assert not entries.transition(entry_id, "CALLED", "SERVED", to_iso(NOW))
        assert entries.transition(entry_id, "WAITING", "CALLED", to_iso(NOW))
        assert entries.current_called("sale-1")["id"] == entry_id
        assert entries.next_waiting("sale-1") is None
        row = entries.get(entry_id)
    assert row["status"] == "CALLED"
    assert row["notified_at"] == to_iso(NOW)
    assert row["entered_at"] is None


def test_user_contact_prefers_phone(db_path: Path, seed) -> None:
    seed.user("u1", phone="+1555", email="u1@example.com")
    seed.user("u2", email="u2@example.com")
    seed.user("u3", phone=" ", email="u3@example.com")
    with get_connection(db_path) as conn:
        users = UserRepository(conn)
        assert users.get_contact("u1") == "+1555"
        assert users.get_contact("u2") == "u2@example.com"
        assert users.get_contact("u3") == "u3@example.com"
        assert users.get_contact("missing") is None


def test_sqlite_errors_become_store_errors(db_path: Path) -> None:
    with get_connection(db_path) as conn:
        conn.execute("DROP TABLE bids")
        with pytest.raises(StoreError) as excinfo:
            BidRepository(conn).highest_for_item("item-1")
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)
