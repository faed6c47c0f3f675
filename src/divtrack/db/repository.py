"""Repository - CRUD operations for all entities."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import ConflictError, NotFoundError
from divtrack.core.models import (
    CardStats,
    Game,
    League,
    PriceSnapshot,
    PriceSource,
    Session,
    SessionCard,
    SessionSummary,
    SnapshotCardPrice,
    StatsScope,
    STANDARD_LEAGUE_NAME,
)
from divtrack.db.connection import Database

logger = get_logger()

# SQLite INTEGER upper bound
MAX_SQLITE_INT = 9223372036854775807


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Repository:
    """Data access layer for all entities."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        """Get a setting value by key."""
        row = self.db.fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Set a setting value."""
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.now().isoformat()),
        )

    # --- Leagues ---

    def upsert_league(self, league: League) -> League:
        """Insert or update a league by (game, name) and return it with its id."""
        with self.db.transaction() as cursor:
            cursor.execute(
                """INSERT INTO leagues (game, name, start_date, end_date)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (game, name) DO UPDATE SET
                       start_date = COALESCE(excluded.start_date, leagues.start_date),
                       end_date = excluded.end_date""",
                (league.game.value, league.name, _ts(league.start_date), _ts(league.end_date)),
            )
            row = cursor.execute(
                "SELECT * FROM leagues WHERE game = ? AND name = ?",
                (league.game.value, league.name),
            ).fetchone()
        return self._row_to_league(row)

    def get_league(self, league_id: int) -> Optional[League]:
        """Get a league by ID."""
        row = self.db.fetchone("SELECT * FROM leagues WHERE id = ?", (league_id,))
        return self._row_to_league(row) if row else None

    def get_league_by_name(self, game: Game, name: str) -> Optional[League]:
        row = self.db.fetchone(
            "SELECT * FROM leagues WHERE game = ? AND name = ?", (game.value, name)
        )
        return self._row_to_league(row) if row else None

    def get_leagues(self, game: Optional[Game] = None) -> list[League]:
        """Get leagues, newest first, optionally for one game."""
        if game is not None:
            rows = self.db.fetchall(
                "SELECT * FROM leagues WHERE game = ? ORDER BY start_date DESC, name",
                (game.value,),
            )
        else:
            rows = self.db.fetchall("SELECT * FROM leagues ORDER BY game, start_date DESC, name")
        return [self._row_to_league(row) for row in rows]

    def ensure_standard_league(self, game: Game) -> League:
        """Get the permanent Standard league for a game, creating it if missing."""
        league = self.get_league_by_name(game, STANDARD_LEAGUE_NAME)
        if league is not None:
            return league
        return self.upsert_league(League(id=None, game=game, name=STANDARD_LEAGUE_NAME))

    def _row_to_league(self, row) -> League:
        return League(
            id=row["id"],
            game=Game(row["game"]),
            name=row["name"],
            start_date=_parse_ts(row["start_date"]),
            end_date=_parse_ts(row["end_date"]),
        )

    # --- Sessions ---

    def insert_session(self, session: Session) -> Session:
        """
        Insert a new active session.

        Raises:
            ConflictError: another session is already active
        """
        try:
            cursor = self.db.execute(
                """INSERT INTO sessions
                   (game, league_id, snapshot_id, started_at, is_active, total_count, decks_opened)
                   VALUES (?, ?, ?, ?, 1, 0, 0)""",
                (
                    session.game.value,
                    session.league_id,
                    session.snapshot_id,
                    session.started_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("A session is already active") from e
        session.id = cursor.lastrowid
        return session

    def get_session(self, session_id: int) -> Optional[Session]:
        """Get a session by ID, including its card counts."""
        row = self.db.fetchone("SELECT * FROM sessions WHERE id = ?", (session_id,))
        if not row:
            return None
        return self._row_to_session(row)

    def get_active_session(self) -> Optional[Session]:
        row = self.db.fetchone("SELECT * FROM sessions WHERE is_active = 1")
        if not row:
            return None
        return self._row_to_session(row)

    def list_sessions(
        self,
        game: Optional[Game] = None,
        league_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Session], int]:
        """
        List sessions newest first.

        Returns:
            Tuple of (sessions on the requested page, total matching sessions)
        """
        clauses = []
        params: list = []
        if game is not None:
            clauses.append("game = ?")
            params.append(game.value)
        if league_id is not None:
            clauses.append("league_id = ?")
            params.append(league_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = self.db.fetchone(f"SELECT COUNT(*) AS n FROM sessions {where}", tuple(params))["n"]
        offset = max(page - 1, 0) * page_size
        rows = self.db.fetchall(
            f"SELECT * FROM sessions {where} ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?",
            tuple(params) + (page_size, offset),
        )
        return [self._row_to_session(row) for row in rows], total

    def record_card_drop(self, session_id: int, card_name: str, seen_at: datetime) -> int:
        """
        Count one card for a session.

        The card row, its timestamps and the session total are written in one
        transaction.

        Returns:
            The card's new count within the session
        """
        seen = seen_at.isoformat()
        with self.db.transaction() as cursor:
            cursor.execute(
                """INSERT INTO session_cards (session_id, card_name, count, first_seen_at, last_seen_at)
                   VALUES (?, ?, 1, ?, ?)
                   ON CONFLICT (session_id, card_name) DO UPDATE SET
                       count = count + 1,
                       last_seen_at = excluded.last_seen_at""",
                (session_id, card_name, seen, seen),
            )
            cursor.execute(
                "UPDATE sessions SET total_count = total_count + 1 WHERE id = ? AND is_active = 1",
                (session_id,),
            )
            if cursor.rowcount == 0:
                raise ConflictError(f"Session {session_id} is not active")
            row = cursor.execute(
                "SELECT count FROM session_cards WHERE session_id = ? AND card_name = ?",
                (session_id, card_name),
            ).fetchone()
        return row["count"]

    def increment_decks_opened(self, session_id: int) -> None:
        cursor = self.db.execute(
            "UPDATE sessions SET decks_opened = decks_opened + 1 WHERE id = ? AND is_active = 1",
            (session_id,),
        )
        if cursor.rowcount == 0:
            raise ConflictError(f"Session {session_id} is not active")

    def end_session(
        self, session_id: int, ended_at: datetime, summary: Optional[SessionSummary] = None
    ) -> None:
        """Close a session and store its summary in one transaction."""
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE sessions SET ended_at = ?, is_active = 0 WHERE id = ? AND is_active = 1",
                (ended_at.isoformat(), session_id),
            )
            if cursor.rowcount == 0:
                raise ConflictError(f"Session {session_id} is not active")
            if summary is not None:
                self._insert_summary(cursor, summary)

    def delete_session(self, session_id: int) -> bool:
        """
        Delete an ended session with its cards and summary.

        Returns True if the session was deleted.
        """
        row = self.db.fetchone("SELECT is_active FROM sessions WHERE id = ?", (session_id,))
        if not row:
            return False
        if row["is_active"]:
            raise ConflictError("Cannot delete the active session")
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM session_cards WHERE session_id = ?", (session_id,))
            cursor.execute("DELETE FROM session_summaries WHERE session_id = ?", (session_id,))
            cursor.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            deleted = cursor.rowcount > 0
        return deleted

    def get_session_cards(self, session_id: int) -> list[SessionCard]:
        """Get card rows for a session in first-seen order."""
        rows = self.db.fetchall(
            "SELECT * FROM session_cards WHERE session_id = ? ORDER BY first_seen_at, id",
            (session_id,),
        )
        return [self._row_to_session_card(row) for row in rows]

    def set_card_visibility(
        self, session_id: int, card_name: str, source: PriceSource, hidden: bool
    ) -> bool:
        """Hide or show a card's price from one source. Returns False if no such card row."""
        column = "hide_price_exchange" if source is PriceSource.EXCHANGE else "hide_price_stash"
        cursor = self.db.execute(
            f"UPDATE session_cards SET {column} = ? WHERE session_id = ? AND card_name = ?",
            (1 if hidden else 0, session_id, card_name),
        )
        return cursor.rowcount > 0

    def _row_to_session(self, row) -> Session:
        card_rows = self.db.fetchall(
            "SELECT card_name, count FROM session_cards WHERE session_id = ? ORDER BY first_seen_at, id",
            (row["id"],),
        )
        return Session(
            id=row["id"],
            game=Game(row["game"]),
            league_id=row["league_id"],
            started_at=datetime.fromisoformat(row["started_at"]),
            ended_at=_parse_ts(row["ended_at"]),
            snapshot_id=row["snapshot_id"],
            cards={r["card_name"]: r["count"] for r in card_rows},
            decks_opened=row["decks_opened"],
        )

    def _row_to_session_card(self, row) -> SessionCard:
        return SessionCard(
            card_name=row["card_name"],
            count=row["count"],
            first_seen_at=_parse_ts(row["first_seen_at"]),
            last_seen_at=_parse_ts(row["last_seen_at"]),
            hide_price_exchange=bool(row["hide_price_exchange"]),
            hide_price_stash=bool(row["hide_price_stash"]),
        )

    # --- Session summaries ---

    def _insert_summary(self, cursor: sqlite3.Cursor, summary: SessionSummary) -> None:
        cursor.execute(
            """INSERT OR REPLACE INTO session_summaries
               (session_id, game, league_name, started_at, ended_at, duration_minutes,
                total_count, decks_opened, total_exchange_value, total_stash_value,
                exchange_chaos_to_divine, stash_chaos_to_divine, stacked_deck_chaos_cost)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                summary.session_id,
                summary.game.value,
                summary.league_name,
                summary.started_at.isoformat(),
                summary.ended_at.isoformat(),
                summary.duration_minutes,
                summary.total_count,
                summary.decks_opened,
                summary.total_exchange_value,
                summary.total_stash_value,
                summary.exchange_chaos_to_divine,
                summary.stash_chaos_to_divine,
                summary.stacked_deck_chaos_cost,
            ),
        )

    def get_session_summary(self, session_id: int) -> Optional[SessionSummary]:
        row = self.db.fetchone(
            "SELECT * FROM session_summaries WHERE session_id = ?", (session_id,)
        )
        if not row:
            return None
        return SessionSummary(
            session_id=row["session_id"],
            game=Game(row["game"]),
            league_name=row["league_name"],
            started_at=datetime.fromisoformat(row["started_at"]),
            ended_at=datetime.fromisoformat(row["ended_at"]),
            duration_minutes=row["duration_minutes"],
            total_count=row["total_count"],
            decks_opened=row["decks_opened"],
            total_exchange_value=row["total_exchange_value"],
            total_stash_value=row["total_stash_value"],
            exchange_chaos_to_divine=row["exchange_chaos_to_divine"],
            stash_chaos_to_divine=row["stash_chaos_to_divine"],
            stacked_deck_chaos_cost=row["stacked_deck_chaos_cost"],
        )

    # --- Price snapshots ---

    def insert_snapshot(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        """
        Persist a new snapshot and all of its card prices in one transaction.

        Snapshots are never updated after this call.
        """
        with self.db.transaction() as cursor:
            cursor.execute(
                """INSERT INTO snapshots
                   (league_id, fetched_at, exchange_chaos_to_divine, stash_chaos_to_divine,
                    stacked_deck_chaos_cost)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    snapshot.league_id,
                    snapshot.fetched_at.isoformat(),
                    snapshot.exchange_chaos_to_divine,
                    snapshot.stash_chaos_to_divine,
                    snapshot.stacked_deck_chaos_cost,
                ),
            )
            snapshot_id = cursor.lastrowid
            cursor.executemany(
                """INSERT INTO snapshot_card_prices
                   (snapshot_id, card_name, price_source, chaos_value, divine_value,
                    stack_size, confidence)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        snapshot_id,
                        p.card_name,
                        p.price_source.value,
                        p.chaos_value,
                        p.divine_value,
                        p.stack_size,
                        p.confidence,
                    )
                    for p in snapshot.card_prices
                ],
            )
        snapshot.id = snapshot_id
        return snapshot

    def get_snapshot(self, snapshot_id: int) -> Optional[PriceSnapshot]:
        row = self.db.fetchone("SELECT * FROM snapshots WHERE id = ?", (snapshot_id,))
        return self._row_to_snapshot(row) if row else None

    def get_latest_snapshot(self, league_id: int) -> Optional[PriceSnapshot]:
        """Get the most recently fetched snapshot for a league."""
        row = self.db.fetchone(
            """SELECT * FROM snapshots WHERE league_id = ?
               ORDER BY fetched_at DESC, id DESC LIMIT 1""",
            (league_id,),
        )
        return self._row_to_snapshot(row) if row else None

    def get_snapshot_count(self, league_id: int) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) AS n FROM snapshots WHERE league_id = ?", (league_id,)
        )
        return row["n"]

    def _row_to_snapshot(self, row) -> PriceSnapshot:
        price_rows = self.db.fetchall(
            "SELECT * FROM snapshot_card_prices WHERE snapshot_id = ? ORDER BY id",
            (row["id"],),
        )
        return PriceSnapshot(
            id=row["id"],
            league_id=row["league_id"],
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
            exchange_chaos_to_divine=row["exchange_chaos_to_divine"],
            stash_chaos_to_divine=row["stash_chaos_to_divine"],
            stacked_deck_chaos_cost=row["stacked_deck_chaos_cost"],
            card_prices=[
                SnapshotCardPrice(
                    card_name=p["card_name"],
                    price_source=PriceSource(p["price_source"]),
                    chaos_value=p["chaos_value"],
                    divine_value=p["divine_value"],
                    stack_size=p["stack_size"],
                    confidence=p["confidence"],
                )
                for p in price_rows
            ],
        )

    # --- Card statistics ---

    def get_card_stats(
        self,
        scope: StatsScope,
        session_id: Optional[int] = None,
        league_id: Optional[int] = None,
        game: Optional[Game] = None,
    ) -> CardStats:
        """
        Aggregate card counts over persisted sessions.

        Args:
            scope: SESSION needs session_id, LEAGUE needs league_id, ALL
                optionally narrows to one game

        Raises:
            NotFoundError: the session or league does not exist
        """
        if scope is StatsScope.SESSION:
            if session_id is None or self.get_session(session_id) is None:
                raise NotFoundError(f"Session {session_id} not found")
            where, params = "s.id = ?", (session_id,)
        elif scope is StatsScope.LEAGUE:
            if league_id is None or self.get_league(league_id) is None:
                raise NotFoundError(f"League {league_id} not found")
            where, params = "s.league_id = ?", (league_id,)
        elif game is not None:
            where, params = "s.game = ?", (game.value,)
        else:
            where, params = "1 = 1", ()

        rows = self.db.fetchall(
            f"""SELECT sc.card_name, SUM(sc.count) AS total
                FROM session_cards sc
                JOIN sessions s ON s.id = sc.session_id
                WHERE {where}
                GROUP BY sc.card_name
                ORDER BY total DESC, sc.card_name""",
            params,
        )
        totals = self.db.fetchone(
            f"""SELECT COUNT(*) AS n, COALESCE(SUM(s.decks_opened), 0) AS decks
                FROM sessions s WHERE {where}""",
            params,
        )
        cards = {row["card_name"]: row["total"] for row in rows}
        return CardStats(
            scope=scope,
            total_count=sum(cards.values()),
            cards=cards,
            decks_opened=totals["decks"],
            session_count=totals["n"],
        )

    # --- Log Position ---

    def save_log_position(self, file_path: Path, position: int, file_size: int) -> None:
        """Save current log file position for resume."""
        if position > MAX_SQLITE_INT or file_size > MAX_SQLITE_INT:
            logger.warning(
                "Log position overflow - position=%d, file_size=%d", position, file_size
            )
            position = min(position, MAX_SQLITE_INT)
            file_size = min(file_size, MAX_SQLITE_INT)

        self.db.execute(
            """INSERT OR REPLACE INTO log_position
               (id, file_path, position, file_size, updated_at)
               VALUES (1, ?, ?, ?, ?)""",
            (str(file_path), position, file_size, datetime.now().isoformat()),
        )

    def get_log_position(self) -> Optional[tuple[Path, int, int]]:
        """
        Get saved log position.

        Returns:
            Tuple of (file_path, position, file_size) or None
        """
        row = self.db.fetchone("SELECT * FROM log_position WHERE id = 1")
        if not row:
            return None
        return (Path(row["file_path"]), row["position"], row["file_size"])
