from __future__ import annotations

import sqlite3

from saleengine.infrastructure.observability import get_logger

from .migrations import SchemaMigrator
from .tables import (
    SCHEMA_ALLOCATIONS_SQL,
    SCHEMA_BIDS_SQL,
    SCHEMA_ITEMS_SQL,
    SCHEMA_LINE_ENTRIES_SQL,
    SCHEMA_SALE_SUBSCRIBERS_SQL,
    SCHEMA_SALES_SQL,
    SCHEMA_USERS_SQL,
)

_logger = get_logger(__name__)

# Parents before children so foreign keys resolve.
_BASE_TABLES = (
    SCHEMA_USERS_SQL,
    SCHEMA_SALES_SQL,
    SCHEMA_SALE_SUBSCRIBERS_SQL,
    SCHEMA_ITEMS_SQL,
    SCHEMA_BIDS_SQL,
    SCHEMA_ALLOCATIONS_SQL,
    SCHEMA_LINE_ENTRIES_SQL,
)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create missing tables and apply pending migrations."""

    conn.executescript("".join(_BASE_TABLES))
    applied = SchemaMigrator(conn).migrate()
    if applied:
        _logger.info("Applied schema migrations: %s", ", ".join(applied))
