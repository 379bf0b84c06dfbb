"""CLI commands for placing and listing bids."""

from __future__ import annotations

import click
from rich.table import Table

from saleengine.domain.errors import EngineError

from .context import build_cli_context, console, fail


@click.group()
def bid() -> None:
    """Place and inspect bids on auction items."""
    pass


@bid.command(name="place")
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.argument("item_id")
@click.argument("user_id")
@click.argument("amount", type=float)
def place(db_path: str | None, item_id: str, user_id: str, amount: float) -> None:
    """Place a bid of AMOUNT on ITEM_ID for USER_ID."""
    cli_context = build_cli_context(db_path)
    with cli_context.dispatcher() as dispatcher:
        try:
            placed = cli_context.bid_ledger(dispatcher).place_bid(item_id, user_id, amount)
        except EngineError as exc:
            fail(exc)
    console.print(
        f"[green]Bid #{placed.id} of {placed.amount:.2f} accepted on {item_id} "
        f"for {user_id}.[/green]"
    )


@bid.command(name="list")
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option("--limit", type=int, default=100, show_default=True)
@click.argument("item_id")
def list_bids_cmd(db_path: str | None, limit: int, item_id: str) -> None:
    """List the bids on ITEM_ID in the order they were accepted."""
    ledger = build_cli_context(db_path).bid_ledger()
    try:
        bids = ledger.list_bids(item_id, limit=limit)
        minimum = ledger.minimum_bid(item_id)
    except EngineError as exc:
        fail(exc)
    if not bids:
        console.print(f"[yellow]No bids yet; the opening bid is {minimum:.2f}.[/yellow]")
        return
    table = Table(title=f"Bids on {item_id}")
    table.add_column("#", justify="right")
    table.add_column("User")
    table.add_column("Amount", justify="right")
    table.add_column("Placed at")
    for entry in bids:
        placed_at = entry.created_at.isoformat() if entry.created_at else "-"
        table.add_row(str(entry.id), entry.user_id, f"{entry.amount:.2f}", placed_at)
    console.print(table)
    console.print(f"Next bid must be at least {minimum:.2f}.")
