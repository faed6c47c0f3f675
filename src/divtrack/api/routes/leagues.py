"""League API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query

from divtrack.api.dependencies import get_league_service
from divtrack.api.schemas import LeagueListResponse, LeagueResponse
from divtrack.core.errors import TransientFetchError
from divtrack.core.models import Game, League
from divtrack.prices.leagues import LeagueService

router = APIRouter(prefix="/api/leagues", tags=["leagues"])


def _league_to_response(league: League) -> LeagueResponse:
    return LeagueResponse(
        id=league.id,
        game=league.game.value,
        name=league.name,
        start_date=league.start_date,
        end_date=league.end_date,
        is_active=league.is_active,
    )


def _parse_game(game: str) -> Game:
    try:
        return Game(game)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown game: {game}")


@router.get("", response_model=LeagueListResponse)
def list_leagues(
    game: str = Query("poe1"),
    service: LeagueService = Depends(get_league_service),
) -> LeagueListResponse:
    """Stored leagues for a game (always includes Standard)."""
    leagues = service.list_leagues(_parse_game(game))
    return LeagueListResponse(leagues=[_league_to_response(l) for l in leagues])


@router.post("/refresh", response_model=LeagueListResponse)
def refresh_leagues(
    game: str = Query("poe1"),
    service: LeagueService = Depends(get_league_service),
) -> LeagueListResponse:
    """Fetch the league list from the official source. 503 if unreachable."""
    try:
        leagues = service.refresh(_parse_game(game))
    except TransientFetchError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return LeagueListResponse(leagues=[_league_to_response(l) for l in leagues])
