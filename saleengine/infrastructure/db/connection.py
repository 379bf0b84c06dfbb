"""SQLite connections and transactions for the engine store.

Every service call opens its own connection; concurrency control comes from
``BEGIN IMMEDIATE`` transactions and conditional updates, never from sharing
a connection between threads.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from saleengine.domain.errors import StoreError

from .config import DatabaseConfig, get_database_config

# Fixed-width so that stored timestamps compare correctly as TEXT in SQL.
_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class DatabaseError(StoreError):
    """Raised when SQLite cannot connect, configure or commit."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Render ``value`` as a fixed-width UTC ISO-8601 string with ``Z`` suffix.

    Naive datetimes are assumed to already be in UTC.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_ISO_FORMAT)


def iso_utcnow() -> str:
    return to_iso(utcnow())


def apply_pragmas(conn: sqlite3.Connection, config: DatabaseConfig, timeout: float) -> None:
    """Configure journal mode, foreign keys and the busy timeout on ``conn``."""
    pragmas = [f"busy_timeout={int(timeout * 1000)}"]
    if config.enable_wal:
        pragmas.append("journal_mode=WAL")
    if config.foreign_keys:
        pragmas.append("foreign_keys=ON")
    for pragma in pragmas:
        try:
            conn.execute(f"PRAGMA {pragma}")
        except sqlite3.Error as exc:
            raise DatabaseError(f"Could not set PRAGMA {pragma}: {exc}") from exc


@contextmanager
def get_connection(
    db_path: str | Path | None = None,
    *,
    timeout: float | None = None,
    check_same_thread: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection and close it afterwards.

    ``db_path`` and ``timeout`` override the values from ``config.json``.
    """
    config = get_database_config()
    target = Path(db_path) if db_path is not None else config.db_path
    wait = config.timeout if timeout is None else timeout
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        conn = sqlite3.connect(target, timeout=wait, check_same_thread=check_same_thread)
    except sqlite3.Error as exc:
        raise DatabaseError(f"Cannot open {target}: {exc}") from exc
    try:
        apply_pragmas(conn, config, wait)
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside a ``BEGIN IMMEDIATE`` transaction.

    The write lock is taken up front so that the reads performed inside the
    block cannot be invalidated by a concurrent writer before the block's own
    writes land. Commits on success and rolls back on any exception. A block
    entered while a transaction is already open joins it.
    """

    if conn.in_transaction:
        yield conn
        return
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        raise DatabaseError(f"Failed to begin transaction: {exc}") from exc
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        try:
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise DatabaseError(f"Failed to commit transaction: {exc}") from exc
