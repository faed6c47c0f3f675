"""SQLite connection management with WAL mode."""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from divtrack.config.logging import get_logger
from divtrack.core.errors import MigrationError
from divtrack.db.migrations import MigrationRunner

logger = get_logger()


class Database:
    """SQLite database connection manager with thread safety."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._connection: sqlite3.Connection | None = None
        # Re-entrant so repository helpers can run inside transaction()
        self._lock = threading.RLock()

    def connect(self, migrate: bool = True) -> None:
        """
        Open database connection and apply pending migrations.

        Raises:
            MigrationError: a migration failed; the connection is closed
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode; transactions are explicit
        )
        self._connection.row_factory = sqlite3.Row

        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA synchronous=NORMAL")
        self._connection.execute("PRAGMA foreign_keys=ON")
        # Wait up to 30 seconds for locks instead of failing immediately
        self._connection.execute("PRAGMA busy_timeout=30000")

        if migrate:
            try:
                self.migrate()
            except MigrationError:
                self.close()
                raise

    def migrate(self) -> list[str]:
        """Apply pending migrations, returning the ids applied."""
        with self._lock:
            applied = MigrationRunner(self.connection).apply_pending()
        if applied:
            logger.info("Database %s migrated: %s", self.db_path, ", ".join(applied))
        return applied

    def migration_runner(self) -> MigrationRunner:
        return MigrationRunner(self.connection)

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Context manager for database transactions.

        Usage:
            with db.transaction() as cursor:
                cursor.execute(...)

        Automatically commits on success, rolls back on exception.
        Holds the connection lock for the whole transaction.
        """
        with self._lock:
            cursor = self.connection.cursor()
            cursor.execute("BEGIN")
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement."""
        with self._lock:
            return self.connection.execute(sql, params)

    def executemany(self, sql: str, params_seq: list[tuple]) -> sqlite3.Cursor:
        """Execute a SQL statement for each parameter set."""
        with self._lock:
            return self.connection.executemany(sql, params_seq)

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        """Execute SQL and fetch one row."""
        with self._lock:
            cursor = self.connection.execute(sql, params)
            return cursor.fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute SQL and fetch all rows."""
        with self._lock:
            cursor = self.connection.execute(sql, params)
            return cursor.fetchall()
