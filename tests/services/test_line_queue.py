"""Tests for starting a sale's line and moving people through it."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from saleengine.domain.errors import (
    AlreadyStartedError,
    AuthorizationError,
    CallInProgressError,
    EmptyQueueError,
    InvalidTransitionError,
    NotFoundError,
)
from saleengine.domain.models import LineEntryStatus
from saleengine.infrastructure.observability import get_metrics_summary
from saleengine.services import LineQueue, QueueController

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def three_in_line(seed) -> None:
    seed.sale("sale-1", organizer_id="org-1")
    seed.subscriber("ann", phone="+15550001", minutes=1)
    seed.subscriber("bob", email="bob@example.com", minutes=2)
    seed.subscriber("cat", phone="+15550003", minutes=3)


def test_start_line_assigns_positions_and_notifies(
    db_path: Path, three_in_line, dispatcher, notifier
) -> None:
    result = LineQueue.from_sqlite_path(db_path, dispatcher=dispatcher).start_line(
        "sale-1", now=NOW
    )

    assert [(e.user_id, e.position) for e in result.entries] == [
        ("ann", 1),
        ("bob", 2),
        ("cat", 3),
    ]
    assert all(e.status is LineEntryStatus.WAITING for e in result.entries)
    assert result.notifications.delivered_count == 3
    (message,) = notifier.messages_to("bob@example.com")
    assert "Maple Street Estate Sale" in message
    assert "Your position is 2" in message


def test_start_line_skips_unreachable_subscribers(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    seed.subscriber("ann", phone="+15550001", minutes=1)
    seed.subscriber("ghost", minutes=2)
    seed.subscriber("cat", email="cat@example.com", minutes=3)

    result = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)

    assert [(e.user_id, e.position) for e in result.entries] == [("ann", 1), ("cat", 2)]
    assert result.entries[0].contact == "+15550001"
    assert result.entries[1].contact == "cat@example.com"


def test_start_line_prefers_phone_over_email(db_path: Path, seed) -> None:
    seed.sale("sale-1")
    seed.subscriber("ann", phone="+15550001", email="ann@example.com")

    (entry,) = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW).entries

    assert entry.contact == "+15550001"


def test_start_line_twice_is_rejected(db_path: Path, three_in_line) -> None:
    queue = LineQueue.from_sqlite_path(db_path)
    queue.start_line("sale-1", now=NOW)

    with pytest.raises(AlreadyStartedError):
        queue.start_line("sale-1", now=NOW)

    status = QueueController.from_sqlite_path(db_path).get_status("sale-1")
    assert len(status) == 3


def test_concurrent_starts_create_one_line(db_path: Path, three_in_line) -> None:
    outcomes: list[str] = []
    lock = threading.Lock()
    barrier = threading.Barrier(4)

    def worker() -> None:
        queue = LineQueue.from_sqlite_path(db_path)
        barrier.wait()
        try:
            queue.start_line("sale-1", now=NOW)
            outcome = "started"
        except AlreadyStartedError:
            outcome = "rejected"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["rejected", "rejected", "rejected", "started"]
    status = QueueController.from_sqlite_path(db_path).get_status("sale-1")
    assert [e.position for e in status] == [1, 2, 3]


def test_start_line_unknown_sale(db_path: Path) -> None:
    with pytest.raises(NotFoundError):
        LineQueue.from_sqlite_path(db_path).start_line("nope", now=NOW)


def test_start_line_checks_organizer(db_path: Path, three_in_line) -> None:
    queue = LineQueue.from_sqlite_path(db_path)

    with pytest.raises(AuthorizationError):
        queue.start_line("sale-1", now=NOW, organizer_id="someone-else")

    # A rejected attempt leaves the line unstarted.
    assert len(queue.start_line("sale-1", now=NOW, organizer_id="org-1").entries) == 3


def test_start_line_with_no_subscribers(db_path: Path, seed) -> None:
    seed.sale("sale-1")

    result = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)

    assert result.entries == []
    with pytest.raises(EmptyQueueError):
        QueueController.from_sqlite_path(db_path).call_next("sale-1", now=NOW)


def test_failed_notification_does_not_undo_line(
    db_path: Path, three_in_line, make_dispatcher
) -> None:
    failing, recording = make_dispatcher(fail_for={"+15550001"})

    result = LineQueue.from_sqlite_path(db_path, dispatcher=failing).start_line(
        "sale-1", now=NOW
    )

    assert len(result.entries) == 3
    assert result.notifications.delivered_count == 2
    (failure,) = result.notifications.failed
    assert failure.user_id == "ann"
    assert len(recording.sent) == 2


def test_call_next_follows_positions(db_path: Path, three_in_line) -> None:
    LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)
    controller = QueueController.from_sqlite_path(db_path, single_called_entry=False)

    called = [controller.call_next("sale-1", now=NOW) for _ in range(3)]

    assert [e.position for e in called] == [1, 2, 3]
    assert all(e.status is LineEntryStatus.CALLED for e in called)
    assert called[0].notified_at is not None
    with pytest.raises(EmptyQueueError, match="No one is waiting in line"):
        controller.call_next("sale-1", now=NOW)


def test_call_next_waits_for_called_entry(db_path: Path, three_in_line) -> None:
    LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)
    controller = QueueController.from_sqlite_path(db_path)

    first = controller.call_next("sale-1", now=NOW)
    with pytest.raises(CallInProgressError):
        controller.call_next("sale-1", now=NOW)

    controller.mark_served(first.id, now=NOW)
    assert controller.call_next("sale-1", now=NOW).position == 2


def test_call_next_notifies_called_person(
    db_path: Path, three_in_line, dispatcher, notifier
) -> None:
    LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)
    controller = QueueController.from_sqlite_path(db_path, dispatcher=dispatcher)

    controller.call_next("sale-1", now=NOW)
    dispatcher.shutdown(wait=True)

    (message,) = notifier.messages_to("+15550001")
    assert message.startswith("You're next in line for Maple Street Estate Sale")


def test_skips_cancelled_entries(db_path: Path, three_in_line) -> None:
    entries = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW).entries
    controller = QueueController.from_sqlite_path(db_path)

    cancelled = controller.cancel(entries[0].id, now=NOW)

    assert cancelled.status is LineEntryStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert controller.call_next("sale-1", now=NOW).user_id == "bob"


def test_mark_served_requires_called_entry(db_path: Path, three_in_line) -> None:
    entries = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW).entries
    controller = QueueController.from_sqlite_path(db_path)

    with pytest.raises(InvalidTransitionError):
        controller.mark_served(entries[0].id, now=NOW)

    called = controller.call_next("sale-1", now=NOW)
    served = controller.mark_served(called.id, now=NOW)
    assert served.status is LineEntryStatus.SERVED
    assert served.entered_at is not None

    with pytest.raises(InvalidTransitionError):
        controller.mark_served(called.id, now=NOW)
    with pytest.raises(InvalidTransitionError):
        controller.cancel(called.id, now=NOW)


def test_concurrent_mark_served_succeeds_once(db_path: Path, three_in_line) -> None:
    LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)
    called = QueueController.from_sqlite_path(db_path).call_next("sale-1", now=NOW)
    outcomes: list[str] = []
    lock = threading.Lock()
    barrier = threading.Barrier(4)

    def worker() -> None:
        controller = QueueController.from_sqlite_path(db_path)
        barrier.wait()
        try:
            controller.mark_served(called.id, now=NOW)
            outcome = "served"
        except InvalidTransitionError:
            outcome = "rejected"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("served") == 1


def test_transitions_on_unknown_entry(db_path: Path) -> None:
    controller = QueueController.from_sqlite_path(db_path)

    with pytest.raises(NotFoundError):
        controller.mark_served(999, now=NOW)
    with pytest.raises(NotFoundError):
        controller.cancel(999, now=NOW)
    with pytest.raises(NotFoundError):
        controller.get_status("nope")


def test_transitions_check_organizer(db_path: Path, three_in_line) -> None:
    entries = LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW).entries
    controller = QueueController.from_sqlite_path(db_path)

    with pytest.raises(AuthorizationError):
        controller.call_next("sale-1", now=NOW, organizer_id="someone-else")
    with pytest.raises(AuthorizationError):
        controller.cancel(entries[0].id, now=NOW, organizer_id="someone-else")

    assert controller.cancel(entries[0].id, now=NOW, organizer_id="org-1").status is (
        LineEntryStatus.CANCELLED
    )


def test_line_transition_metrics(db_path: Path, three_in_line) -> None:
    LineQueue.from_sqlite_path(db_path).start_line("sale-1", now=NOW)
    controller = QueueController.from_sqlite_path(db_path)
    called = controller.call_next("sale-1", now=NOW)
    controller.mark_served(called.id, now=NOW)

    assert get_metrics_summary()["counters"]["line_transitions_total"] == {
        "transition=started": 1.0,
        "transition=called": 1.0,
        "transition=served": 1.0,
    }
