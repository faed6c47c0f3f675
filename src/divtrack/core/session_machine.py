"""Session state machine - the single owner of the active session."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import ConflictError, NotFoundError
from divtrack.core.models import (
    Game,
    ItemDropped,
    LeagueDetected,
    LogEvent,
    PriceSource,
    Session,
    SessionState,
    SessionSummary,
    StackedDeckOpened,
    ZoneChanged,
)
from divtrack.core.stats import compute_session_stats
from divtrack.db.repository import Repository

logger = get_logger()


def selected_league_key(game: Game) -> str:
    """Settings key holding the league most recently reported by the client."""
    return f"{game.value}_selected_league"


class SessionStateMachine:
    """
    Apply log events and session commands to the active session.

    States: NO_ACTIVE_SESSION -> ACTIVE -> ENDED. ENDED behaves like
    NO_ACTIVE_SESSION for incoming events and for a new start().

    Every mutation (events, start, stop, visibility, deletion) runs under one
    re-entrant lock, so callers on any thread see a consistent order. Events
    that arrive when no session is active are dropped.
    """

    def __init__(self, repository: Repository, game: Game = Game.POE1) -> None:
        self.repository = repository
        self.game = game
        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._state = SessionState.NO_ACTIVE_SESSION
        self._current_zone: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_zone(self) -> Optional[str]:
        return self._current_zone

    @property
    def selected_league_name(self) -> Optional[str]:
        """League reported by the client, used for sessions started without one."""
        return self.repository.get_setting(selected_league_key(self.game))

    def load_active(self) -> Optional[Session]:
        """Restore an active session left open by a previous run."""
        with self._lock:
            session = self.repository.get_active_session()
            if session is not None:
                self._session = session
                self._state = SessionState.ACTIVE
                logger.info("Resumed session %d (%d cards)", session.id, session.total_count)
            return self.snapshot()

    def start(self, league_id: Optional[int] = None) -> Session:
        """
        Start a new session.

        Args:
            league_id: League to bind. None uses the client-reported league,
                else Standard. An ended league falls back to Standard.

        Raises:
            ConflictError: a session is already active
            NotFoundError: league_id is unknown
        """
        with self._lock:
            if self._session is not None:
                raise ConflictError(f"Session {self._session.id} is already active")

            league = self._resolve_league(league_id)
            snapshot = self.repository.get_latest_snapshot(league.id)

            session = self.repository.insert_session(
                Session(
                    id=None,
                    game=league.game,
                    league_id=league.id,
                    started_at=datetime.now(),
                    snapshot_id=snapshot.id if snapshot else None,
                )
            )
            self._session = session
            self._state = SessionState.ACTIVE
            logger.info("Session %d started in %s (%s)", session.id, league.name, league.game.value)
            return self.snapshot()

    def _resolve_league(self, league_id: Optional[int]):
        if league_id is None:
            name = self.selected_league_name
            league = self.repository.get_league_by_name(self.game, name) if name else None
            if league is None:
                league = self.repository.ensure_standard_league(self.game)
        else:
            league = self.repository.get_league(league_id)
            if league is None:
                raise NotFoundError(f"League {league_id} not found")

        if not league.is_active:
            logger.info("League %s has ended, using Standard", league.name)
            league = self.repository.ensure_standard_league(league.game)
        return league

    def apply(self, event: LogEvent) -> None:
        """Apply one parsed log event."""
        with self._lock:
            if isinstance(event, LeagueDetected):
                self.repository.set_setting(selected_league_key(self.game), event.name)
                return
            if isinstance(event, ZoneChanged):
                self._current_zone = event.zone_name
                return

            session = self._session
            if session is None:
                logger.debug("No active session, ignoring %s", type(event).__name__)
                return

            if isinstance(event, ItemDropped):
                # One drop line is one card; stack size is metadata only
                count = self.repository.record_card_drop(
                    session.id, event.card_name, event.timestamp or datetime.now()
                )
                session.cards[event.card_name] = count
            elif isinstance(event, StackedDeckOpened):
                self.repository.increment_decks_opened(session.id)
                session.decks_opened += 1

    def stop(self) -> Session:
        """
        End the active session and store its summary.

        Raises:
            ConflictError: no session is active
        """
        with self._lock:
            session = self._session
            if session is None:
                raise ConflictError("No active session")

            ended_at = datetime.now()
            session.ended_at = ended_at
            try:
                self.repository.end_session(
                    session.id, ended_at, self._build_summary(session, ended_at)
                )
            except Exception:
                session.ended_at = None
                raise

            self._session = None
            self._state = SessionState.ENDED
            logger.info(
                "Session %d ended: %d cards, %d decks",
                session.id,
                session.total_count,
                session.decks_opened,
            )
            return replace(session, cards=dict(session.cards))

    def _build_summary(self, session: Session, ended_at: datetime) -> SessionSummary:
        league = self.repository.get_league(session.league_id)
        snapshot = (
            self.repository.get_snapshot(session.snapshot_id)
            if session.snapshot_id is not None
            else self.repository.get_latest_snapshot(session.league_id)
        )
        cards = self.repository.get_session_cards(session.id)
        counts = {c.card_name: c.count for c in cards}

        totals = {}
        for source in PriceSource:
            stats = compute_session_stats(
                counts,
                session.decks_opened,
                snapshot,
                source,
                hidden_cards=[c.card_name for c in cards if c.is_hidden(source)],
            )
            totals[source] = stats.total_value

        return SessionSummary(
            session_id=session.id,
            game=session.game,
            league_name=league.name if league else "",
            started_at=session.started_at,
            ended_at=ended_at,
            duration_minutes=int((ended_at - session.started_at).total_seconds() // 60),
            total_count=session.total_count,
            decks_opened=session.decks_opened,
            total_exchange_value=totals[PriceSource.EXCHANGE],
            total_stash_value=totals[PriceSource.STASH],
            exchange_chaos_to_divine=snapshot.exchange_chaos_to_divine if snapshot else 0.0,
            stash_chaos_to_divine=snapshot.stash_chaos_to_divine if snapshot else 0.0,
            stacked_deck_chaos_cost=snapshot.stacked_deck_chaos_cost if snapshot else 0.0,
        )

    def set_card_price_visibility(
        self,
        card_name: str,
        source: PriceSource,
        hidden: bool,
        session_id: Optional[int] = None,
    ) -> None:
        """
        Hide or show one card's price from a source's totals.

        Raises:
            NotFoundError: no such session, or the card was never found in it
        """
        with self._lock:
            if session_id is None:
                if self._session is None:
                    raise NotFoundError("No active session")
                session_id = self._session.id
            if not self.repository.set_card_visibility(session_id, card_name, source, hidden):
                raise NotFoundError(f"Card {card_name!r} not found in session {session_id}")

    def delete_session(self, session_id: int) -> None:
        """
        Delete an ended session.

        Raises:
            ConflictError: the session is the active one
            NotFoundError: no such session
        """
        with self._lock:
            if self._session is not None and self._session.id == session_id:
                raise ConflictError("Cannot delete the active session; stop it first")
            if not self.repository.delete_session(session_id):
                raise NotFoundError(f"Session {session_id} not found")
            logger.info("Session %d deleted", session_id)

    def snapshot(self) -> Optional[Session]:
        """Copy of the active session, or None."""
        with self._lock:
            if self._session is None:
                return None
            return replace(self._session, cards=dict(self._session.cards))
