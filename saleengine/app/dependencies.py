"""Shared FastAPI dependencies for Saleengine application components."""

from __future__ import annotations

import threading
from typing import Annotated

from fastapi import Depends

from saleengine.infrastructure.notifications import build_notifier
from saleengine.services import (
    AuctionSettlementScheduler,
    BidLedger,
    LineQueue,
    NotificationDispatcher,
    QueueController,
    SettlementRunner,
)

from .config import EngineSettings, load_settings
from .events import EngineEventBus

__all__ = [
    # Process-wide singletons
    "event_bus",
    "shutdown_engine",
    # Factory functions
    "get_settings",
    "get_dispatcher",
    "get_bid_ledger",
    "get_settlement_scheduler",
    "get_settlement_runner",
    "get_line_queue",
    "get_queue_controller",
    # Annotated dependency types (modern FastAPI pattern)
    "SettingsDep",
    "DispatcherDep",
    "BidLedgerDep",
    "SettlementSchedulerDep",
    "SettlementRunnerDep",
    "LineQueueDep",
    "QueueControllerDep",
]

event_bus = EngineEventBus()

_lock = threading.Lock()
_dispatcher: NotificationDispatcher | None = None
_runner: SettlementRunner | None = None


def get_settings() -> EngineSettings:
    return load_settings()


SettingsDep = Annotated[EngineSettings, Depends(get_settings)]


def get_dispatcher(settings: SettingsDep) -> NotificationDispatcher:
    """Return the process-wide notification dispatcher, creating it once."""
    global _dispatcher
    with _lock:
        if _dispatcher is None:
            _dispatcher = NotificationDispatcher(
                build_notifier(settings.notifier),
                max_workers=settings.notifier_workers,
            )
        return _dispatcher


DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_bid_ledger(settings: SettingsDep, dispatcher: DispatcherDep) -> BidLedger:
    return BidLedger.from_sqlite_path(settings.db_path, dispatcher=dispatcher)


def get_settlement_scheduler(
    settings: SettingsDep, dispatcher: DispatcherDep
) -> AuctionSettlementScheduler:
    return AuctionSettlementScheduler.from_sqlite_path(
        settings.db_path,
        dispatcher=dispatcher,
        batch_size=settings.settlement_batch_size,
    )


def get_settlement_runner(
    settings: SettingsDep,
    scheduler: Annotated[AuctionSettlementScheduler, Depends(get_settlement_scheduler)],
) -> SettlementRunner:
    """Return the single runner that owns the periodic sweep."""
    global _runner
    with _lock:
        if _runner is None:
            _runner = SettlementRunner(
                scheduler,
                event_publisher=event_bus.publish,
                default_interval_seconds=settings.settlement_interval_seconds,
            )
        return _runner


def get_line_queue(settings: SettingsDep, dispatcher: DispatcherDep) -> LineQueue:
    return LineQueue.from_sqlite_path(settings.db_path, dispatcher=dispatcher)


def get_queue_controller(
    settings: SettingsDep, dispatcher: DispatcherDep
) -> QueueController:
    return QueueController.from_sqlite_path(
        settings.db_path,
        dispatcher=dispatcher,
        single_called_entry=settings.single_called_entry,
    )


async def shutdown_engine() -> None:
    """Stop the runner and drain pending notifications."""
    global _dispatcher, _runner
    runner, dispatcher = _runner, _dispatcher
    _runner = _dispatcher = None
    if runner is not None and runner.state.status != "idle":
        await runner.stop()
    if dispatcher is not None:
        dispatcher.shutdown(wait=True)


BidLedgerDep = Annotated[BidLedger, Depends(get_bid_ledger)]
SettlementSchedulerDep = Annotated[
    AuctionSettlementScheduler, Depends(get_settlement_scheduler)
]
SettlementRunnerDep = Annotated[SettlementRunner, Depends(get_settlement_runner)]
LineQueueDep = Annotated[LineQueue, Depends(get_line_queue)]
QueueControllerDep = Annotated[QueueController, Depends(get_queue_controller)]
