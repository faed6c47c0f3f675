"""Versioned schema migrations and the runner that applies them.

A migration is a plain description object: an id that sorts chronologically,
and ordered lists of up and down steps. Each step pairs a ``check`` that
reports whether its change is already present with an ``apply`` that makes
the change, so re-running a partially applied migration is safe.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from divtrack.config.logging import get_logger
from divtrack.core.errors import MigrationError, NotFoundError
from divtrack.db import schema

logger = get_logger()


@dataclass(frozen=True)
class MigrationStep:
    """One idempotent schema change."""

    check: Callable[[sqlite3.Cursor], bool]  # True when already applied
    apply: Callable[[sqlite3.Cursor], None]
    description: str = ""


@dataclass(frozen=True)
class Migration:
    """An ordered schema change with an explicit inverse."""

    id: str  # timestamp-prefixed, e.g. 20250101_000001
    description: str
    up: tuple[MigrationStep, ...]
    down: tuple[MigrationStep, ...] = ()


# --- Introspection helpers ---


def table_exists(cursor: sqlite3.Cursor, table: str) -> bool:
    row = cursor.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def index_exists(cursor: sqlite3.Cursor, index: str) -> bool:
    row = cursor.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?", (index,)
    ).fetchone()
    return row is not None


def column_exists(cursor: sqlite3.Cursor, table: str, column: str) -> bool:
    if not table_exists(cursor, table):
        return False
    cursor.execute(f"PRAGMA table_info({table})")
    return column in [row[1] for row in cursor.fetchall()]


# --- Step builders ---


def create_table(table: str, ddl: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: table_exists(c, table),
        apply=lambda c: c.execute(ddl),
        description=f"create table {table}",
    )


def drop_table(table: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: not table_exists(c, table),
        apply=lambda c: c.execute(f"DROP TABLE {table}"),
        description=f"drop table {table}",
    )


def create_index(index: str, ddl: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: index_exists(c, index),
        apply=lambda c: c.execute(ddl),
        description=f"create index {index}",
    )


def drop_index(index: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: not index_exists(c, index),
        apply=lambda c: c.execute(f"DROP INDEX {index}"),
        description=f"drop index {index}",
    )


def add_column(table: str, column: str, definition: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: column_exists(c, table, column),
        apply=lambda c: c.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}"),
        description=f"add column {table}.{column}",
    )


def drop_column(table: str, column: str) -> MigrationStep:
    return MigrationStep(
        check=lambda c: not column_exists(c, table, column),
        apply=lambda c: c.execute(f"ALTER TABLE {table} DROP COLUMN {column}"),
        description=f"drop column {table}.{column}",
    )


# --- Migration history (append only, never edit an applied entry) ---

MIGRATIONS: list[Migration] = [
    Migration(
        id="20250101_000001",
        description="Initial schema",
        up=(
            create_table("settings", schema.CREATE_SETTINGS),
            create_table("leagues", schema.CREATE_LEAGUES),
            create_table("snapshots", schema.CREATE_SNAPSHOTS),
            create_index("idx_snapshots_league", schema.CREATE_SNAPSHOTS_LEAGUE_INDEX),
            create_table("snapshot_card_prices", schema.CREATE_SNAPSHOT_CARD_PRICES),
            create_table("sessions", schema.CREATE_SESSIONS),
            create_index("idx_sessions_single_active", schema.CREATE_SESSIONS_ACTIVE_INDEX),
            create_index("idx_sessions_league", schema.CREATE_SESSIONS_LEAGUE_INDEX),
            create_table("session_cards", schema.CREATE_SESSION_CARDS),
            create_table("session_summaries", schema.CREATE_SESSION_SUMMARIES),
            create_table("log_position", schema.CREATE_LOG_POSITION),
        ),
        down=(
            drop_table("log_position"),
            drop_table("session_summaries"),
            drop_table("session_cards"),
            drop_index("idx_sessions_league"),
            drop_index("idx_sessions_single_active"),
            drop_table("sessions"),
            drop_table("snapshot_card_prices"),
            drop_index("idx_snapshots_league"),
            drop_table("snapshots"),
            drop_table("leagues"),
            drop_table("settings"),
        ),
    ),
    Migration(
        id="20250115_000001",
        description="Per-source card price visibility",
        up=(
            add_column("session_cards", "hide_price_exchange", "INTEGER NOT NULL DEFAULT 0"),
            add_column("session_cards", "hide_price_stash", "INTEGER NOT NULL DEFAULT 0"),
        ),
        down=(
            drop_column("session_cards", "hide_price_stash"),
            drop_column("session_cards", "hide_price_exchange"),
        ),
    ),
    Migration(
        id="20250201_000001",
        description="Stacked deck cost and price confidence",
        up=(
            add_column("snapshots", "stacked_deck_chaos_cost", "REAL NOT NULL DEFAULT 0"),
            add_column("snapshot_card_prices", "confidence", "INTEGER NOT NULL DEFAULT 1"),
        ),
        down=(
            drop_column("snapshot_card_prices", "confidence"),
            drop_column("snapshots", "stacked_deck_chaos_cost"),
        ),
    ),
    Migration(
        id="20250210_000001",
        description="League end dates",
        up=(add_column("leagues", "end_date", "TEXT"),),
        down=(drop_column("leagues", "end_date"),),
    ),
]


class MigrationRunner:
    """
    Apply migrations to a connection and record them in the ledger table.

    The connection must be in autocommit mode (isolation_level=None) so
    each migration can run inside its own explicit transaction.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        migrations: Optional[Sequence[Migration]] = None,
    ) -> None:
        self.connection = connection
        self.migrations = sorted(
            MIGRATIONS if migrations is None else migrations, key=lambda m: m.id
        )
        ids = [m.id for m in self.migrations]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate migration ids")

    def _ensure_ledger(self) -> None:
        self.connection.execute(schema.CREATE_MIGRATIONS)

    def applied_ids(self) -> list[str]:
        """Ids recorded in the ledger, ascending."""
        self._ensure_ledger()
        rows = self.connection.execute("SELECT id FROM migrations ORDER BY id").fetchall()
        return [row[0] for row in rows]

    def pending(self) -> list[Migration]:
        """Migrations newer than the highest applied id."""
        applied = self.applied_ids()
        latest = applied[-1] if applied else ""
        return [m for m in self.migrations if m.id > latest]

    def apply_pending(self) -> list[str]:
        """
        Apply every pending migration in ascending id order.

        Each migration runs in its own transaction. A failure rolls back
        that migration and raises MigrationError; earlier migrations stay
        applied.

        Returns:
            Ids applied by this call
        """
        applied = []
        for migration in self.pending():
            self._run(migration, migration.up, record=True)
            logger.info("Migration %s applied: %s", migration.id, migration.description)
            applied.append(migration.id)
        return applied

    def rollback(self, migration_id: str) -> None:
        """
        Run a migration's down steps and remove it from the ledger.

        Only the most recently applied migration can be rolled back.
        """
        applied = self.applied_ids()
        if migration_id not in applied:
            raise NotFoundError(f"Migration {migration_id} is not applied")
        if migration_id != applied[-1]:
            raise MigrationError(
                migration_id, f"only the latest migration ({applied[-1]}) can be rolled back"
            )
        migration = next((m for m in self.migrations if m.id == migration_id), None)
        if migration is None:
            raise NotFoundError(f"Migration {migration_id} is unknown")

        self._run(migration, migration.down, record=False)
        logger.info("Migration %s rolled back", migration_id)

    def _run(self, migration: Migration, steps: Sequence[MigrationStep], record: bool) -> None:
        cursor = self.connection.cursor()
        cursor.execute("BEGIN")
        try:
            for step in steps:
                if step.check(cursor):
                    continue
                step.apply(cursor)
            if record:
                cursor.execute(
                    "INSERT INTO migrations (id, description, applied_at) VALUES (?, ?, ?)",
                    (migration.id, migration.description, datetime.now().isoformat()),
                )
            else:
                cursor.execute("DELETE FROM migrations WHERE id = ?", (migration.id,))
            cursor.execute("COMMIT")
        except Exception as e:
            if self.connection.in_transaction:
                cursor.execute("ROLLBACK")
            logger.error("Migration %s failed: %s", migration.id, e)
            raise MigrationError(migration.id, str(e)) from e
