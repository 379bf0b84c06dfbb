"""Versioned schema migrations.

Base tables are created idempotently by :func:`ensure_schema`; anything that
changes an existing table is a numbered :class:`Migration` here. Pending
migrations run in order inside one ``BEGIN IMMEDIATE`` transaction, so two
processes opening the same database cannot apply a step twice.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable

from ..connection import DatabaseError, iso_utcnow, transaction
from .tables import SCHEMA_MIGRATIONS_SQL, SCHEMA_VERSION_SQL


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[sqlite3.Connection], str | None]


def _add_line_entry_columns(conn: sqlite3.Connection) -> str | None:
    # Version 1 databases predate contact capture and cancellation stamps.
    existing = {row[1] for row in conn.execute("PRAGMA table_info(line_entries)")}
    added = []
    for column in ("contact", "cancelled_at"):
        if column not in existing:
            conn.execute(f"ALTER TABLE line_entries ADD COLUMN {column} TEXT")
            added.append(column)
    return ",".join(added) or None


MIGRATIONS: tuple[Migration, ...] = (
    Migration(2, "add_line_entries_columns_v2", _add_line_entry_columns),
)

CURRENT_SCHEMA_VERSION = max(migration.version for migration in MIGRATIONS)


class SchemaMigrator:
    """Track the schema version of a database and bring it up to date."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def ensure_tables(self) -> None:
        self.conn.executescript(SCHEMA_VERSION_SQL + SCHEMA_MIGRATIONS_SQL)

    def get_version(self) -> int | None:
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row else None

    def has_migration(self, name: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM schema_migrations WHERE name = ?", (name,)
        ).fetchone()
        return row is not None

    def pending(self, version: int | None) -> list[Migration]:
        return [
            migration
            for migration in MIGRATIONS
            if version is None or migration.version > version
        ]

    def migrate(self) -> list[str]:
        """Apply pending migrations and return their names.

        Raises:
            DatabaseError: the database was written by a newer schema.
        """
        self.ensure_tables()
        if self.get_version() == CURRENT_SCHEMA_VERSION:
            return []
        applied: list[str] = []
        with transaction(self.conn):
            version = self.get_version()
            if version is not None and version > CURRENT_SCHEMA_VERSION:
                raise DatabaseError(
                    f"Database schema version {version} is newer than the "
                    f"supported version {CURRENT_SCHEMA_VERSION}"
                )
            for migration in self.pending(version):
                notes = migration.apply(self.conn)
                if not self.has_migration(migration.name):
                    self.conn.execute(
                        "INSERT INTO schema_migrations (name, applied_at, notes) "
                        "VALUES (?, ?, ?)",
                        (migration.name, iso_utcnow(), notes),
                    )
                applied.append(migration.name)
            self.conn.execute("DELETE FROM schema_version")
            self.conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (CURRENT_SCHEMA_VERSION, iso_utcnow()),
            )
        return applied
