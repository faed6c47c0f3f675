"""Database schema - DDL statements for SQLite.

These are the building blocks of the migrations in ``divtrack.db.migrations``;
nothing executes them directly.
"""

# Migration ledger - one row per applied migration
CREATE_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS migrations (
    id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Settings table - key/value configuration
CREATE_SETTINGS = """
CREATE TABLE settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Leagues - read-mostly reference data refreshed from the league source
CREATE_LEAGUES = """
CREATE TABLE leagues (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game TEXT NOT NULL,
    name TEXT NOT NULL,
    start_date TEXT,
    UNIQUE (game, name)
)
"""

# Sessions - is_active is 1 while ended_at IS NULL
CREATE_SESSIONS = """
CREATE TABLE sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game TEXT NOT NULL,
    league_id INTEGER NOT NULL,
    snapshot_id INTEGER,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    total_count INTEGER NOT NULL DEFAULT 0,
    decks_opened INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (league_id) REFERENCES leagues(id),
    FOREIGN KEY (snapshot_id) REFERENCES snapshots(id) ON DELETE SET NULL
)
"""

# At most one open session at any time
CREATE_SESSIONS_ACTIVE_INDEX = """
CREATE UNIQUE INDEX idx_sessions_single_active ON sessions(is_active) WHERE is_active = 1
"""

CREATE_SESSIONS_LEAGUE_INDEX = """
CREATE INDEX idx_sessions_league ON sessions(league_id, started_at)
"""

# Per-session card counts
CREATE_SESSION_CARDS = """
CREATE TABLE session_cards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    card_name TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    first_seen_at TEXT,
    last_seen_at TEXT,
    UNIQUE (session_id, card_name),
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
)
"""

# Totals frozen when a session ends
CREATE_SESSION_SUMMARIES = """
CREATE TABLE session_summaries (
    session_id INTEGER PRIMARY KEY,
    game TEXT NOT NULL,
    league_name TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    total_count INTEGER NOT NULL,
    decks_opened INTEGER NOT NULL,
    total_exchange_value REAL NOT NULL DEFAULT 0,
    total_stash_value REAL NOT NULL DEFAULT 0,
    exchange_chaos_to_divine REAL NOT NULL DEFAULT 0,
    stash_chaos_to_divine REAL NOT NULL DEFAULT 0,
    stacked_deck_chaos_cost REAL NOT NULL DEFAULT 0,
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
)
"""

# Price snapshots - append-only
CREATE_SNAPSHOTS = """
CREATE TABLE snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    league_id INTEGER NOT NULL,
    fetched_at TEXT NOT NULL,
    exchange_chaos_to_divine REAL NOT NULL,
    stash_chaos_to_divine REAL NOT NULL,
    FOREIGN KEY (league_id) REFERENCES leagues(id)
)
"""

CREATE_SNAPSHOTS_LEAGUE_INDEX = """
CREATE INDEX idx_snapshots_league ON snapshots(league_id, fetched_at)
"""

# Card prices within a snapshot - one row per card per source
CREATE_SNAPSHOT_CARD_PRICES = """
CREATE TABLE snapshot_card_prices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_id INTEGER NOT NULL,
    card_name TEXT NOT NULL,
    price_source TEXT NOT NULL CHECK (price_source IN ('exchange', 'stash')),
    chaos_value REAL NOT NULL,
    divine_value REAL NOT NULL,
    stack_size INTEGER,
    UNIQUE (snapshot_id, card_name, price_source),
    FOREIGN KEY (snapshot_id) REFERENCES snapshots(id) ON DELETE CASCADE
)
"""

# Log position tracking - for resume on restart
CREATE_LOG_POSITION = """
CREATE TABLE log_position (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    file_path TEXT NOT NULL,
    position INTEGER NOT NULL,
    file_size INTEGER NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""
