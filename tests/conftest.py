from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from saleengine.domain.errors import ExternalServiceError
from saleengine.infrastructure.db import ensure_schema, get_connection, to_iso, transaction
from saleengine.infrastructure.db.repositories import (
    ItemRepository,
    SaleRepository,
    UserRepository,
)
from saleengine.infrastructure.notifications import NotifyOutcome
from saleengine.infrastructure.observability import get_registry
from saleengine.services import NotificationDispatcher

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Notifier double that records sends and can fail for chosen contacts."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or ())
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def notify(self, contact: str, message: str) -> NotifyOutcome:
        if contact in self.fail_for:
            raise ExternalServiceError(f"carrier rejected {contact}")
        with self._lock:
            self.sent.append((contact, message))
        return NotifyOutcome.ok(f"msg-{len(self.sent)}")

    def messages_to(self, contact: str) -> list[str]:
        return [message for to, message in self.sent if to == contact]


class Seeder:
    """Write fixture rows the way the marketplace CRUD would."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def item(
        self,
        item_id: str = "item-1",
        *,
        start_price: float | None = 50.0,
        increment: float | None = 10.0,
        ends_at: datetime | None = None,
        title: str = "Walnut dresser",
        status: str = "AVAILABLE",
        sale_id: str | None = None,
    ) -> str:
        with get_connection(self.db_path) as conn, transaction(conn):
            ItemRepository(conn).add(
                item_id,
                sale_id=sale_id,
                title=title,
                auction_start_price=start_price,
                bid_increment=increment,
                auction_end_time=to_iso(ends_at) if ends_at else None,
                status=status,
            )
        return item_id

    def user(self, user_id: str, *, phone: str | None = None, email: str | None = None) -> str:
        with get_connection(self.db_path) as conn, transaction(conn):
            UserRepository(conn).add(user_id, user_id.title(), phone, email)
        return user_id

    def sale(self, sale_id: str = "sale-1", *, organizer_id: str | None = "org-1") -> str:
        with get_connection(self.db_path) as conn, transaction(conn):
            SaleRepository(conn).add(sale_id, "Maple Street Estate Sale", organizer_id)
        return sale_id

    def subscriber(
        self,
        user_id: str,
        *,
        sale_id: str = "sale-1",
        phone: str | None = None,
        email: str | None = None,
        minutes: int = 0,
    ) -> None:
        with get_connection(self.db_path) as conn, transaction(conn):
            SaleRepository(conn).add_subscriber(
                sale_id,
                user_id,
                phone=phone,
                email=email,
                subscribed_at=to_iso(NOW - timedelta(days=1) + timedelta(minutes=minutes)),
            )


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SALEENGINE_CONFIG", str(tmp_path / "config.json"))
    monkeypatch.delenv("SALEENGINE_TWILIO_AUTH_TOKEN", raising=False)
    get_registry().reset()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "engine.db"
    with get_connection(path) as conn:
        ensure_schema(conn)
    return path


@pytest.fixture
def seed(db_path: Path) -> Seeder:
    return Seeder(db_path)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier):
    dispatcher = NotificationDispatcher(notifier, max_workers=2)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def make_dispatcher():
    """Build dispatchers around fresh recording notifiers; shut down on teardown."""
    created: list[NotificationDispatcher] = []

    def _make(fail_for: set[str] | None = None) -> tuple[NotificationDispatcher, RecordingNotifier]:
        recording = RecordingNotifier(fail_for=fail_for)
        dispatcher = NotificationDispatcher(recording, max_workers=2)
        created.append(dispatcher)
        return dispatcher, recording

    yield _make
    for dispatcher in created:
        dispatcher.shutdown(wait=True)
