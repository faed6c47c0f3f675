"""FastAPI application factory."""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from divtrack.api import dependencies
from divtrack.api.routes import leagues, prices, sessions, settings, stats
from divtrack.api.schemas import StatusResponse
from divtrack.config.preferences import Preferences, load_preferences
from divtrack.core.models import Game, PriceSource
from divtrack.core.session_machine import SessionStateMachine
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.prices.leagues import LeagueService
from divtrack.prices.manager import PriceSnapshotManager
from divtrack.version import __version__


def create_app(
    db: Database,
    log_path: Optional[Path] = None,
    machine: Optional[SessionStateMachine] = None,
    price_manager: Optional[PriceSnapshotManager] = None,
    league_service: Optional[LeagueService] = None,
    collector: Optional[object] = None,
    preferences: Optional[Preferences] = None,
    preferences_path: Optional[Path] = None,
    game: Game = Game.POE1,
    auto_refresh_hours: float = 4.0,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators not supplied are built on the same database, so tests can
    inject fakes for any of them.

    Args:
        db: Connected database
        log_path: Path to log file being monitored
        machine: Session state machine shared with the collector
        price_manager: Price snapshot manager
        league_service: League service
        collector: Running collector, if any (status only)
        preferences: User preferences (loaded from disk when None)
        preferences_path: Preferences file (default location when None)
        game: Game whose sessions are started
        auto_refresh_hours: Price refresh interval while a session runs

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="DivTrack API",
        description="Divination card drop tracker API",
        version=__version__,
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    repo = Repository(db)
    prefs = preferences or load_preferences(preferences_path)
    machine = machine or SessionStateMachine(repo, game)
    price_manager = price_manager or PriceSnapshotManager(repo)
    league_service = league_service or LeagueService(repo)
    league_service.ensure_defaults()

    app.state.db = db
    app.state.log_path = log_path
    app.state.repo = repo
    app.state.machine = machine
    app.state.price_manager = price_manager
    app.state.league_service = league_service
    app.state.collector = collector
    app.state.price_source = PriceSource(prefs.price_source)
    app.state.auto_refresh_enabled = prefs.auto_refresh_enabled
    app.state.auto_refresh_seconds = auto_refresh_hours * 3600
    app.state.preferences_path = preferences_path

    app.dependency_overrides[dependencies.get_repository] = lambda: repo
    app.dependency_overrides[dependencies.get_session_machine] = lambda: machine
    app.dependency_overrides[dependencies.get_price_manager] = lambda: price_manager
    app.dependency_overrides[dependencies.get_league_service] = lambda: league_service
    app.dependency_overrides[dependencies.get_price_source] = lambda: app.state.price_source

    app.include_router(sessions.router)
    app.include_router(stats.router)
    app.include_router(prices.router)
    app.include_router(leagues.router)
    app.include_router(settings.router)

    @app.get("/api/status", response_model=StatusResponse, tags=["status"])
    def get_status() -> StatusResponse:
        """Get server status."""
        active = machine.snapshot()
        running_collector = app.state.collector
        return StatusResponse(
            status="ok",
            version=__version__,
            collector_running=bool(running_collector and running_collector.is_running),
            db_path=str(db.db_path),
            log_path=str(log_path) if log_path else None,
            log_path_missing=log_path is None,
            session_state=machine.state.value,
            active_session_id=active.id if active else None,
            current_zone=machine.current_zone,
            selected_league=machine.selected_league_name,
            price_source=app.state.price_source.value,
            pending_events=running_collector.pending_events if running_collector else 0,
            last_price_error=price_manager.last_error,
        )

    return app
