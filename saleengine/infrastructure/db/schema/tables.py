from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_MIGRATIONS_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TEXT NOT NULL,
    notes TEXT
);
"""

SCHEMA_USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT,
    phone TEXT,
    email TEXT
);
"""

SCHEMA_SALES_SQL = """
CREATE TABLE IF NOT EXISTS sales (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    organizer_id TEXT,
    line_started_at TEXT
);
"""

SCHEMA_SALE_SUBSCRIBERS_SQL = """
CREATE TABLE IF NOT EXISTS sale_subscribers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    phone TEXT,
    email TEXT,
    subscribed_at TEXT NOT NULL,
    FOREIGN KEY (sale_id) REFERENCES sales (id) ON DELETE CASCADE,
    UNIQUE (sale_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_subscribers_sale_id ON sale_subscribers (sale_id);
"""

SCHEMA_ITEMS_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    sale_id TEXT,
    title TEXT,
    status TEXT NOT NULL DEFAULT 'AVAILABLE'
        CHECK (status IN ('AVAILABLE', 'SOLD', 'AUCTION_ENDED', 'RESERVED')),
    price REAL,
    auction_start_price REAL,
    current_bid REAL,
    bid_increment REAL,
    auction_end_time TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (sale_id) REFERENCES sales (id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_items_auction_sweep ON items (status, auction_end_time);
"""

SCHEMA_BIDS_SQL = """
CREATE TABLE IF NOT EXISTS bids (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    amount REAL NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (item_id) REFERENCES items (id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_bids_item_amount ON bids (item_id, amount DESC, created_at);
"""

SCHEMA_ALLOCATIONS_SQL = """
CREATE TABLE IF NOT EXISTS allocations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    amount REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at TEXT NOT NULL,
    FOREIGN KEY (item_id) REFERENCES items (id) ON DELETE CASCADE
);
"""

SCHEMA_LINE_ENTRIES_SQL = """
CREATE TABLE IF NOT EXISTS line_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    position INTEGER NOT NULL CHECK (position > 0),
    status TEXT NOT NULL DEFAULT 'WAITING'
        CHECK (status IN ('WAITING', 'CALLED', 'SERVED', 'CANCELLED')),
    notified_at TEXT,
    entered_at TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (sale_id) REFERENCES sales (id) ON DELETE CASCADE,
    UNIQUE (sale_id, position),
    UNIQUE (sale_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_line_entries_sale_status ON line_entries (sale_id, status, position);
"""
