"""FastAPI dependency injection utilities.

Provides shared dependencies for API routes, configured by app factory.
Each function is replaced by create_app() via dependency_overrides.
"""

from divtrack.core.models import PriceSource
from divtrack.core.session_machine import SessionStateMachine
from divtrack.db.repository import Repository
from divtrack.prices.leagues import LeagueService
from divtrack.prices.manager import PriceSnapshotManager


def get_repository() -> Repository:
    """Dependency injection for repository - set by app factory.

    Raises:
        NotImplementedError: If not configured (should never happen in production)
    """
    raise NotImplementedError("Repository not configured")


def get_session_machine() -> SessionStateMachine:
    raise NotImplementedError("Session state machine not configured")


def get_price_manager() -> PriceSnapshotManager:
    raise NotImplementedError("Price manager not configured")


def get_league_service() -> LeagueService:
    raise NotImplementedError("League service not configured")


def get_price_source() -> PriceSource:
    """Selected price source - set by app factory from preferences."""
    return PriceSource.EXCHANGE
