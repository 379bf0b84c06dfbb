"""CLI commands for settling expired auctions."""

from __future__ import annotations

import asyncio
from datetime import datetime

import click
from rich.table import Table

from saleengine.domain.errors import EngineError
from saleengine.services import SettlementReport, SettlementRunner

from .context import build_cli_context, console, fail


def _print_report(report: SettlementReport) -> None:
    if not (report.closed or report.sold or report.failed):
        console.print("No auctions to settle.")
        return
    console.print(
        f"Closed {len(report.closed)} auction(s), sold {len(report.sold)}, "
        f"failed {len(report.failed)}."
    )
    if report.sold:
        table = Table(title="Allocations")
        table.add_column("Item")
        table.add_column("Winner")
        table.add_column("Amount", justify="right")
        for sold in report.sold:
            table.add_row(sold.item_id, sold.user_id, f"{sold.amount:.2f}")
        console.print(table)
    for item_id in report.failed:
        console.print(f"[yellow]Left for reconcile: {item_id}[/yellow]")


@click.group()
def settle() -> None:
    """Close expired auctions and allocate them to winners."""
    pass


@settle.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option(
    "--now",
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]),
    default=None,
    help="Settle as of this UTC time instead of the current time.",
)
def sweep(db_path: str | None, now: datetime | None) -> None:
    """Run one settlement sweep followed by reconcile."""
    cli_context = build_cli_context(db_path)
    with cli_context.dispatcher() as dispatcher:
        try:
            report = cli_context.settlement_scheduler(dispatcher).run_settlement_sweep(now)
        except EngineError as exc:
            fail(exc)
    _print_report(report)


@settle.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
def reconcile(db_path: str | None) -> None:
    """Resolve ended auctions that have bids but no allocation."""
    cli_context = build_cli_context(db_path)
    with cli_context.dispatcher() as dispatcher:
        try:
            report = cli_context.settlement_scheduler(dispatcher).reconcile()
        except EngineError as exc:
            fail(exc)
    _print_report(report)


@settle.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between sweeps (defaults to settlement.interval_seconds).",
)
@click.option(
    "--iterations",
    type=int,
    default=None,
    help="Stop after this many sweeps instead of running until interrupted.",
)
def run(db_path: str | None, interval: float | None, iterations: int | None) -> None:
    """Sweep expired auctions on an interval."""
    cli_context = build_cli_context(db_path)
    interval = interval if interval is not None else cli_context.settings.settlement_interval_seconds
    with cli_context.dispatcher() as dispatcher:
        runner = SettlementRunner(
            cli_context.settlement_scheduler(dispatcher),
            default_interval_seconds=interval,
        )
        console.print(f"Settling every {interval:g}s (Ctrl+C to stop).")
        try:
            asyncio.run(_run_sweeps(runner, interval, iterations))
        except KeyboardInterrupt:
            console.print("[yellow]Stopped.[/yellow]")
    last_error = runner.state.last_error
    if last_error:
        console.print(f"[red]Last sweep failed: {last_error}[/red]")


async def _run_sweeps(
    runner: SettlementRunner, interval: float, iterations: int | None
) -> None:
    completed = 0
    while iterations is None or completed < iterations:
        report = await runner.run_once()
        if report is not None:
            _print_report(report)
        completed += 1
        if iterations is not None and completed >= iterations:
            break
        await asyncio.sleep(interval)
