"""Periodic settlement of ended auctions.

A deployment runs a single :class:`SettlementRunner`; it sweeps on a fixed
interval in a worker thread and reports every status change and non-empty
sweep to the event publisher. Sweeps started elsewhere (the CLI, another
process) can overlap with it because items are claimed before they are
resolved.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import asdict, dataclass
from typing import Any, Literal

from saleengine.infrastructure.db import iso_utcnow
from saleengine.infrastructure.observability import get_logger

from .dto import EventPublisher, noop_event_publisher
from .settlement import AuctionSettlementScheduler, SettlementReport

RunnerStatus = Literal["idle", "running", "paused", "stopping"]

logger = get_logger(__name__)


@dataclass
class SettlementRunnerState:
    status: RunnerStatus = "idle"
    interval_seconds: float | None = None
    current_run_started_at: str | None = None
    last_report: SettlementReport | None = None
    last_error: str | None = None
    runs_completed: int = 0
    paused_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_report"] = self.last_report.to_dict() if self.last_report else None
        return data


class SettlementRunner:
    """Async loop around :meth:`AuctionSettlementScheduler.run_settlement_sweep`.

    ``start`` also resumes a paused loop. An interval of zero or less runs a
    single sweep and returns to idle.
    """

    def __init__(
        self,
        scheduler: AuctionSettlementScheduler,
        *,
        event_publisher: EventPublisher = noop_event_publisher,
        default_interval_seconds: float = 60.0,
    ) -> None:
        self._scheduler = scheduler
        self._publish = event_publisher
        self._default_interval = default_interval_seconds
        self._state = SettlementRunnerState()
        self._task: asyncio.Task[None] | None = None
        self._control = asyncio.Lock()
        # Set while sweeping is allowed; cleared by pause().
        self._active = asyncio.Event()
        self._stopping = asyncio.Event()

    @property
    def state(self) -> SettlementRunnerState:
        return self._state

    def get_status(self) -> dict[str, Any]:
        return self._state.to_dict()

    def _loop_alive(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, interval_seconds: float | None = None) -> SettlementRunnerState:
        async with self._control:
            if self._loop_alive() and self._state.status == "running":
                raise RuntimeError("Settlement runner is already running")
            self._state.interval_seconds = (
                self._default_interval if interval_seconds is None else interval_seconds
            )
            self._state.last_error = None
            self._state.paused_at = None
            self._stopping.clear()
            self._active.set()
            if not self._loop_alive():
                self._task = asyncio.create_task(self._loop())
            await self._transition("running")
            logger.info("Settlement runner started (every %ss)", self._state.interval_seconds)
            return self._state

    async def pause(self) -> SettlementRunnerState:
        async with self._control:
            if self._loop_alive():
                self._active.clear()
                self._state.paused_at = iso_utcnow()
                await self._transition("paused")
                logger.info("Settlement runner paused")
            return self._state

    async def stop(self) -> SettlementRunnerState:
        async with self._control:
            self._stopping.set()
            # Wake a paused loop so it can see the stop request.
            self._active.set()
            await self._transition("stopping")
        task, self._task = self._task, None
        if task is not None:
            await task
        async with self._control:
            await self._transition("idle")
            logger.info("Settlement runner stopped")
            return self._state

    async def run_once(self) -> SettlementReport | None:
        """Sweep and reconcile once; failures are recorded, not raised."""
        self._state.current_run_started_at = iso_utcnow()
        try:
            report = await asyncio.to_thread(self._scheduler.run_settlement_sweep)
        except Exception as exc:
            logger.exception("Settlement sweep failed")
            self._state.last_error = str(exc)
            await self._emit({"type": "settlement_error", "message": str(exc)})
            return None

        self._state.last_report = report
        self._state.last_error = None
        self._state.runs_completed += 1
        if report.closed or report.sold or report.failed:
            await self._emit({"type": "settlement_result", **report.to_dict()})
        return report

    async def _loop(self) -> None:
        while True:
            await self._active.wait()
            if self._stopping.is_set():
                break
            await self.run_once()
            interval = self._state.interval_seconds or 0
            if interval <= 0:
                break
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
        self._state.status = "idle"
        await self._emit_status()

    async def _transition(self, status: RunnerStatus) -> None:
        self._state.status = status
        await self._emit_status()

    async def _emit_status(self) -> None:
        await self._emit({"type": "settlement_runner_status", "state": self.get_status()})

    async def _emit(self, event: dict[str, Any]) -> None:
        try:
            await self._publish(event)
        except Exception:
            logger.exception("Failed to publish %s event", event.get("type"))
