"""Shared helpers for composing CLI command contexts.

This module centralises common CLI wiring such as resolving configuration
paths, building the notification dispatcher and reporting engine errors.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from rich.console import Console

from saleengine.app.config import EngineSettings, load_settings
from saleengine.domain.errors import EngineError
from saleengine.infrastructure.notifications import build_notifier
from saleengine.services import (
    AuctionSettlementScheduler,
    BidLedger,
    LineQueue,
    NotificationDispatcher,
    QueueController,
)

console = Console()


@dataclass(frozen=True)
class CLIContext:
    """Container for CLI dependencies and configuration."""

    db_path: Path
    settings: EngineSettings

    @contextmanager
    def dispatcher(self) -> Iterator[NotificationDispatcher]:
        """Yield a dispatcher and wait for its pending sends on exit."""
        dispatcher = NotificationDispatcher(
            build_notifier(self.settings.notifier),
            max_workers=self.settings.notifier_workers,
        )
        try:
            yield dispatcher
        finally:
            dispatcher.shutdown(wait=True)

    def bid_ledger(self, dispatcher: NotificationDispatcher | None = None) -> BidLedger:
        return BidLedger.from_sqlite_path(self.db_path, dispatcher=dispatcher)

    def settlement_scheduler(
        self, dispatcher: NotificationDispatcher | None = None
    ) -> AuctionSettlementScheduler:
        return AuctionSettlementScheduler.from_sqlite_path(
            self.db_path,
            dispatcher=dispatcher,
            batch_size=self.settings.settlement_batch_size,
        )

    def line_queue(self, dispatcher: NotificationDispatcher | None = None) -> LineQueue:
        return LineQueue.from_sqlite_path(self.db_path, dispatcher=dispatcher)

    def queue_controller(
        self, dispatcher: NotificationDispatcher | None = None
    ) -> QueueController:
        return QueueController.from_sqlite_path(
            self.db_path,
            dispatcher=dispatcher,
            single_called_entry=self.settings.single_called_entry,
        )


def build_cli_context(
    db_path: str | Path | None = None, config_path: str | Path | None = None
) -> CLIContext:
    """Build the CLI context with resolved configuration and database path."""

    settings = load_settings(config_path)
    resolved_db_path = (
        Path(db_path).expanduser() if db_path is not None else settings.db_path
    )
    return CLIContext(db_path=resolved_db_path, settings=settings)


def fail(exc: EngineError) -> NoReturn:
    """Print an engine error in red and exit with status 1."""
    console.print(f"[red]{exc}[/red]")
    raise SystemExit(1)
