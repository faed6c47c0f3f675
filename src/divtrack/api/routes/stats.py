"""Card statistics API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from divtrack.api.dependencies import get_repository
from divtrack.api.schemas import CardStatsResponse
from divtrack.core.errors import NotFoundError
from divtrack.core.models import Game, StatsScope
from divtrack.db.repository import Repository

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/cards", response_model=CardStatsResponse)
def get_card_stats(
    scope: str = Query("all", pattern="^(session|league|all)$"),
    session_id: Optional[int] = Query(None),
    league_id: Optional[int] = Query(None),
    game: Optional[str] = Query(None),
    repo: Repository = Depends(get_repository),
) -> CardStatsResponse:
    """
    Card counts for one session, one league, or all time.

    Aggregated from stored sessions, including the active one.
    """
    try:
        game_filter = Game(game) if game else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown game: {game}")

    try:
        stats = repo.get_card_stats(
            StatsScope(scope), session_id=session_id, league_id=league_id, game=game_filter
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CardStatsResponse(
        scope=stats.scope.value,
        total_count=stats.total_count,
        unique_cards=len(stats.cards),
        decks_opened=stats.decks_opened,
        session_count=stats.session_count,
        cards=stats.cards,
    )
