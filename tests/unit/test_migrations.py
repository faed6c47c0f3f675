"""Tests for schema migrations."""

import sqlite3

import pytest

from divtrack.core.errors import MigrationError, NotFoundError
from divtrack.db.connection import Database
from divtrack.db.migrations import (
    MIGRATIONS,
    Migration,
    MigrationRunner,
    MigrationStep,
    add_column,
    column_exists,
    create_table,
    index_exists,
    table_exists,
)
from divtrack.db import schema


@pytest.fixture
def conn(tmp_path):
    """Raw autocommit connection with no schema."""
    connection = sqlite3.connect(str(tmp_path / "migrate.db"), isolation_level=None)
    yield connection
    connection.close()


def schema_dump(connection: sqlite3.Connection) -> list[tuple]:
    return connection.execute(
        "SELECT type, name, sql FROM sqlite_master ORDER BY type, name"
    ).fetchall()


class TestMigrationRunner:
    """Tests for MigrationRunner."""

    def test_fresh_database_applies_all(self, conn):
        runner = MigrationRunner(conn)
        applied = runner.apply_pending()

        assert applied == [m.id for m in MIGRATIONS]
        assert runner.applied_ids() == applied
        assert runner.pending() == []

    def test_creates_expected_objects(self, conn):
        MigrationRunner(conn).apply_pending()
        cursor = conn.cursor()

        for table in ("settings", "leagues", "sessions", "session_cards",
                      "session_summaries", "snapshots", "snapshot_card_prices",
                      "log_position", "migrations"):
            assert table_exists(cursor, table)
        assert index_exists(cursor, "idx_sessions_single_active")
        assert column_exists(cursor, "session_cards", "hide_price_exchange")
        assert column_exists(cursor, "snapshots", "stacked_deck_chaos_cost")
        assert column_exists(cursor, "leagues", "end_date")

    def test_second_run_is_noop(self, conn):
        runner = MigrationRunner(conn)
        runner.apply_pending()
        before = schema_dump(conn)
        ledger = conn.execute("SELECT id, applied_at FROM migrations ORDER BY id").fetchall()

        assert MigrationRunner(conn).apply_pending() == []
        assert schema_dump(conn) == before
        assert conn.execute(
            "SELECT id, applied_at FROM migrations ORDER BY id"
        ).fetchall() == ledger

    def test_only_newer_migrations_run(self, conn):
        first = MigrationRunner(conn, MIGRATIONS[:1])
        assert first.apply_pending() == [MIGRATIONS[0].id]

        rest = MigrationRunner(conn).apply_pending()
        assert rest == [m.id for m in MIGRATIONS[1:]]

    def test_partially_applied_steps_are_skipped(self, conn):
        # Simulate a crash after one table was created but before the ledger row
        conn.execute(schema.CREATE_SETTINGS)

        applied = MigrationRunner(conn).apply_pending()

        assert applied[0] == MIGRATIONS[0].id
        assert table_exists(conn.cursor(), "leagues")

    def test_column_already_present_is_skipped(self, conn):
        MigrationRunner(conn, MIGRATIONS[:1]).apply_pending()
        conn.execute("ALTER TABLE leagues ADD COLUMN end_date TEXT")

        MigrationRunner(conn).apply_pending()

        assert column_exists(conn.cursor(), "leagues", "end_date")

    def test_rollback_latest(self, conn):
        runner = MigrationRunner(conn)
        runner.apply_pending()
        latest = MIGRATIONS[-1]

        runner.rollback(latest.id)

        assert latest.id not in runner.applied_ids()
        assert not column_exists(conn.cursor(), "leagues", "end_date")
        assert [m.id for m in runner.pending()] == [latest.id]

    def test_rollback_then_reapply(self, conn):
        runner = MigrationRunner(conn)
        runner.apply_pending()
        runner.rollback(MIGRATIONS[-1].id)

        assert runner.apply_pending() == [MIGRATIONS[-1].id]
        assert column_exists(conn.cursor(), "leagues", "end_date")

    def test_rollback_not_latest_rejected(self, conn):
        runner = MigrationRunner(conn)
        runner.apply_pending()

        with pytest.raises(MigrationError):
            runner.rollback(MIGRATIONS[0].id)

    def test_rollback_unknown_id(self, conn):
        runner = MigrationRunner(conn)
        runner.apply_pending()

        with pytest.raises(NotFoundError):
            runner.rollback("19990101_000001")

    def test_failed_migration_rolls_back(self, conn):
        broken = Migration(
            id="20991231_000001",
            description="Broken",
            up=(
                create_table("scratch", "CREATE TABLE scratch (id INTEGER PRIMARY KEY)"),
                MigrationStep(
                    check=lambda c: False,
                    apply=lambda c: c.execute("ALTER TABLE missing_table ADD COLUMN x TEXT"),
                ),
            ),
        )
        runner = MigrationRunner(conn, list(MIGRATIONS) + [broken])

        with pytest.raises(MigrationError) as exc_info:
            runner.apply_pending()

        assert exc_info.value.migration_id == broken.id
        assert not table_exists(conn.cursor(), "scratch")
        assert broken.id not in runner.applied_ids()
        # Earlier migrations stay applied
        assert runner.applied_ids() == [m.id for m in MIGRATIONS]

    def test_step_exception_wrapped_and_rolled_back(self, conn):
        def explode(cursor):
            raise KeyError("bad step")

        broken = Migration(
            id="20991231_000002",
            description="Step raises",
            up=(
                create_table("scratch", "CREATE TABLE scratch (id INTEGER PRIMARY KEY)"),
                MigrationStep(check=lambda c: False, apply=explode),
            ),
        )
        runner = MigrationRunner(conn, list(MIGRATIONS) + [broken])

        with pytest.raises(MigrationError) as exc_info:
            runner.apply_pending()

        assert exc_info.value.migration_id == broken.id
        assert not conn.in_transaction
        assert not table_exists(conn.cursor(), "scratch")
        assert broken.id not in runner.applied_ids()

    def test_duplicate_ids_rejected(self, conn):
        step = add_column("leagues", "extra", "TEXT")
        dupes = [Migration("20250101_000009", "a", (step,)), Migration("20250101_000009", "b", (step,))]

        with pytest.raises(ValueError):
            MigrationRunner(conn, dupes)


class TestDatabaseMigrate:
    """Tests for migration through Database."""

    def test_connect_migrates(self, tmp_path):
        db = Database(tmp_path / "app.db")
        db.connect()
        try:
            assert db.migration_runner().pending() == []
        finally:
            db.close()

    def test_connect_without_migrate(self, tmp_path):
        db = Database(tmp_path / "app.db")
        db.connect(migrate=False)
        try:
            assert len(db.migration_runner().pending()) == len(MIGRATIONS)
            assert db.migrate() == [m.id for m in MIGRATIONS]
        finally:
            db.close()

    def test_reopen_is_idempotent(self, tmp_path):
        path = tmp_path / "app.db"
        db = Database(path)
        db.connect()
        db.close()

        db = Database(path)
        db.connect()
        try:
            assert db.migrate() == []
        finally:
            db.close()
