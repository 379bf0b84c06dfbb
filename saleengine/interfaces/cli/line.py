"""CLI commands for running the physical line of a sale."""

from __future__ import annotations

import click
from rich.table import Table

from saleengine.domain.errors import EngineError
from saleengine.domain.models import LineEntry, LineEntryStatus

from .context import build_cli_context, console, fail

_STATUS_STYLES = {
    LineEntryStatus.WAITING: "white",
    LineEntryStatus.CALLED: "bold green",
    LineEntryStatus.SERVED: "dim",
    LineEntryStatus.CANCELLED: "dim red",
}


def _entry_line(entry: LineEntry) -> str:
    return f"#{entry.position} {entry.user_id} ({entry.status.value}, entry {entry.id})"


@click.group()
def line() -> None:
    """Start and move the line of an estate sale."""
    pass


@line.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option("--organizer", default=None, help="Organizer performing the action.")
@click.argument("sale_id")
def start(db_path: str | None, organizer: str | None, sale_id: str) -> None:
    """Assign line positions to the subscribers of SALE_ID."""
    cli_context = build_cli_context(db_path)
    with cli_context.dispatcher() as dispatcher:
        try:
            result = cli_context.line_queue(dispatcher).start_line(
                sale_id, organizer_id=organizer
            )
        except EngineError as exc:
            fail(exc)
    console.print(
        f"[green]Line started with {len(result.entries)} people; "
        f"{result.notifications.delivered_count} notified.[/green]"
    )
    for failure in result.notifications.failed:
        console.print(f"[yellow]Could not notify {failure.user_id}: {failure.reason}[/yellow]")


@line.command(name="next")
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option("--organizer", default=None, help="Organizer performing the action.")
@click.argument("sale_id")
def next_cmd(db_path: str | None, organizer: str | None, sale_id: str) -> None:
    """Call the next waiting person of SALE_ID."""
    cli_context = build_cli_context(db_path)
    with cli_context.dispatcher() as dispatcher:
        try:
            entry = cli_context.queue_controller(dispatcher).call_next(
                sale_id, organizer_id=organizer
            )
        except EngineError as exc:
            fail(exc)
    console.print(f"[green]Called {_entry_line(entry)}[/green]")


@line.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option("--organizer", default=None, help="Organizer performing the action.")
@click.argument("entry_id", type=int)
def served(db_path: str | None, organizer: str | None, entry_id: int) -> None:
    """Mark line entry ENTRY_ID as served."""
    controller = build_cli_context(db_path).queue_controller()
    try:
        entry = controller.mark_served(entry_id, organizer_id=organizer)
    except EngineError as exc:
        fail(exc)
    console.print(f"Served {_entry_line(entry)}")


@line.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.option("--organizer", default=None, help="Organizer performing the action.")
@click.argument("entry_id", type=int)
def cancel(db_path: str | None, organizer: str | None, entry_id: int) -> None:
    """Cancel line entry ENTRY_ID."""
    controller = build_cli_context(db_path).queue_controller()
    try:
        entry = controller.cancel(entry_id, organizer_id=organizer)
    except EngineError as exc:
        fail(exc)
    console.print(f"Cancelled {_entry_line(entry)}")


@line.command()
@click.option("--db", "db_path", default=None, help="Path to the SQLite database.")
@click.argument("sale_id")
def status(db_path: str | None, sale_id: str) -> None:
    """Show the line of SALE_ID ordered by position."""
    controller = build_cli_context(db_path).queue_controller()
    try:
        entries = controller.get_status(sale_id)
    except EngineError as exc:
        fail(exc)
    if not entries:
        console.print("[yellow]The line has not started or is empty.[/yellow]")
        return
    table = Table(title=f"Line for {sale_id}")
    table.add_column("Pos", justify="right")
    table.add_column("User")
    table.add_column("Status")
    table.add_column("Entry", justify="right")
    for entry in entries:
        style = _STATUS_STYLES[entry.status]
        table.add_row(
            str(entry.position),
            entry.user_id,
            f"[{style}]{entry.status.value}[/{style}]",
            str(entry.id),
        )
    console.print(table)
