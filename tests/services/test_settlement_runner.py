import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from saleengine.services import AuctionSettlementScheduler, SettlementReport, SettlementRunner, SoldItem


class StubScheduler:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    def run_settlement_sweep(self, now=None) -> SettlementReport:
        self.calls += 1
        if self.fail:
            raise RuntimeError("database is locked")
        return SettlementReport(
            closed=[f"item-{self.calls}"],
            sold=[SoldItem(f"item-{self.calls}", "u1", 60.0)],
        )


def test_runner_runs_once_and_emits_events() -> None:
    events: list[dict] = []

    async def publish(payload: dict) -> None:
        events.append(payload)

    async def run() -> None:
        scheduler = StubScheduler()
        runner = SettlementRunner(scheduler, event_publisher=publish)

        await runner.start(interval_seconds=0)
        await asyncio.sleep(0.05)
        await runner.stop()

        assert scheduler.calls == 1
        assert runner.state.runs_completed == 1
        assert runner.state.status == "idle"
        results = [evt for evt in events if evt.get("type") == "settlement_result"]
        assert results[0]["closed"] == ["item-1"]

    asyncio.run(run())


def test_runner_pause_and_resume() -> None:
    async def run() -> None:
        scheduler = StubScheduler()
        runner = SettlementRunner(scheduler, default_interval_seconds=0.02)

        await runner.start()
        await asyncio.sleep(0.05)
        await runner.pause()
        assert runner.state.status == "paused"
        assert runner.state.paused_at is not None
        paused_calls = scheduler.calls
        await asyncio.sleep(0.06)
        # At most the sweep that was in flight when pausing completes.
        assert scheduler.calls <= paused_calls + 1

        await runner.start()
        await asyncio.sleep(0.05)
        await runner.stop()

        assert scheduler.calls > paused_calls
        assert runner.get_status()["status"] == "idle"

    asyncio.run(run())


def test_runner_rejects_second_start() -> None:
    async def run() -> None:
        runner = SettlementRunner(StubScheduler(), default_interval_seconds=10)
        await runner.start()
        with pytest.raises(RuntimeError):
            await runner.start()
        await runner.stop()

    asyncio.run(run())


def test_runner_survives_failed_sweep() -> None:
    events: list[dict] = []

    async def publish(payload: dict) -> None:
        events.append(payload)

    async def run() -> None:
        runner = SettlementRunner(StubScheduler(fail=True), event_publisher=publish)
        report = await runner.run_once()

        assert report is None
        assert runner.state.last_error == "database is locked"
        assert runner.state.runs_completed == 0
        assert events[-1]["type"] == "settlement_error"

    asyncio.run(run())


def test_runner_ignores_publisher_errors() -> None:
    async def publish(payload: dict) -> None:
        raise ConnectionError("socket closed")

    async def run() -> None:
        runner = SettlementRunner(StubScheduler(), event_publisher=publish)
        report = await runner.run_once()
        assert report is not None and report.closed == ["item-1"]

    asyncio.run(run())


def test_runner_settles_ended_auctions(db_path: Path, seed) -> None:
    seed.item("item-1", ends_at=datetime.now(timezone.utc) - timedelta(minutes=1))

    async def run() -> None:
        runner = SettlementRunner(AuctionSettlementScheduler.from_sqlite_path(db_path))
        report = await runner.run_once()
        assert report is not None
        assert report.closed == ["item-1"]
        assert runner.get_status()["last_report"]["closed"] == ["item-1"]

    asyncio.run(run())
