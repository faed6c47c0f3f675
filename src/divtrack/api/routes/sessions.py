"""Sessions API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from divtrack.api.dependencies import (
    get_price_manager,
    get_price_source,
    get_repository,
    get_session_machine,
)
from divtrack.api.schemas import (
    CardLine,
    CardVisibilityRequest,
    SessionListItem,
    SessionListResponse,
    SessionResponse,
    StartSessionRequest,
)
from divtrack.config.logging import get_logger
from divtrack.core.errors import ConflictError, NotFoundError
from divtrack.core.models import Game, PriceSource, Session
from divtrack.core.session_machine import SessionStateMachine
from divtrack.core.stats import CardStatEntry, compute_session_stats
from divtrack.db.repository import Repository
from divtrack.prices.manager import PriceSnapshotManager

logger = get_logger()

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _card_line(entry: CardStatEntry) -> CardLine:
    valuation = entry.valuation
    return CardLine(
        card_name=entry.card_name,
        count=entry.count,
        ratio=entry.ratio,
        chaos_value=valuation.chaos_value,
        divine_value=valuation.divine_value,
        total_value=entry.total_value,
        price_source=valuation.source.value if valuation.source else None,
        is_priced=valuation.is_priced,
        is_fallback=valuation.is_fallback,
        hidden=entry.hidden,
    )


def build_session_response(
    session: Session, repo: Repository, source: PriceSource
) -> SessionResponse:
    """Combine a session with its bound (or the league's latest) snapshot."""
    snapshot = (
        repo.get_snapshot(session.snapshot_id)
        if session.snapshot_id is not None
        else repo.get_latest_snapshot(session.league_id)
    )
    cards = repo.get_session_cards(session.id)
    stats = compute_session_stats(
        session.cards,
        session.decks_opened,
        snapshot,
        source,
        hidden_cards=[c.card_name for c in cards if c.is_hidden(source)],
        first_seen={c.card_name: c.first_seen_at for c in cards if c.first_seen_at},
    )
    league = repo.get_league(session.league_id)

    return SessionResponse(
        id=session.id,
        game=session.game.value,
        league_id=session.league_id,
        league_name=league.name if league else None,
        snapshot_id=snapshot.id if snapshot else None,
        started_at=session.started_at,
        ended_at=session.ended_at,
        is_active=session.is_active,
        duration_seconds=session.duration_seconds,
        total_count=stats.total_count,
        unique_cards=stats.unique_cards,
        decks_opened=stats.decks_opened,
        price_source=source.value,
        total_value=stats.total_value,
        total_value_divine=stats.total_value_divine,
        net_profit=stats.net_profit,
        most_valuable=_card_line(stats.most_valuable) if stats.most_valuable else None,
        cards=[_card_line(e) for e in stats.cards],
        unpriced=stats.unpriced,
    )


def _resolve_source(price_source: Optional[str], default: PriceSource) -> PriceSource:
    if price_source is None:
        return default
    try:
        return PriceSource(price_source)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown price source: {price_source}")


@router.post("/start", response_model=SessionResponse)
def start_session(
    request: Request,
    body: StartSessionRequest = StartSessionRequest(),
    machine: SessionStateMachine = Depends(get_session_machine),
    prices: PriceSnapshotManager = Depends(get_price_manager),
    repo: Repository = Depends(get_repository),
    source: PriceSource = Depends(get_price_source),
) -> SessionResponse:
    """Start a session. 409 if one is already active."""
    try:
        session = machine.start(body.league_id)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    # Reuses a recent snapshot, otherwise fetches one in the background
    prices.get_or_refresh_async(session.league_id)
    if getattr(request.app.state, "auto_refresh_enabled", False):
        prices.start_auto_refresh(
            session.league_id, getattr(request.app.state, "auto_refresh_seconds", None)
        )

    return build_session_response(session, repo, source)


@router.post("/stop", response_model=SessionResponse)
def stop_session(
    machine: SessionStateMachine = Depends(get_session_machine),
    prices: PriceSnapshotManager = Depends(get_price_manager),
    repo: Repository = Depends(get_repository),
    source: PriceSource = Depends(get_price_source),
) -> SessionResponse:
    """Stop the active session. 409 if none is active."""
    try:
        session = machine.stop()
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    prices.stop_auto_refresh()
    return build_session_response(session, repo, source)


@router.get("/active", response_model=Optional[SessionResponse])
def get_active_session(
    price_source: Optional[str] = Query(None),
    machine: SessionStateMachine = Depends(get_session_machine),
    repo: Repository = Depends(get_repository),
    source: PriceSource = Depends(get_price_source),
) -> Optional[SessionResponse]:
    """Snapshot of the active session, or null."""
    session = machine.snapshot()
    if session is None:
        return None
    return build_session_response(session, repo, _resolve_source(price_source, source))


@router.get("", response_model=SessionListResponse)
def list_sessions(
    game: Optional[str] = Query(None),
    league_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    repo: Repository = Depends(get_repository),
) -> SessionListResponse:
    """List sessions newest first."""
    try:
        game_filter = Game(game) if game else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown game: {game}")

    sessions, total = repo.list_sessions(
        game=game_filter, league_id=league_id, page=page, page_size=page_size
    )
    return SessionListResponse(
        sessions=[
            SessionListItem(
                id=s.id,
                game=s.game.value,
                league_id=s.league_id,
                started_at=s.started_at,
                ended_at=s.ended_at,
                is_active=s.is_active,
                total_count=s.total_count,
                unique_cards=s.unique_cards,
                decks_opened=s.decks_opened,
            )
            for s in sessions
        ],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: int,
    price_source: Optional[str] = Query(None),
    repo: Repository = Depends(get_repository),
    source: PriceSource = Depends(get_price_source),
) -> SessionResponse:
    """Session detail with statistics."""
    session = repo.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return build_session_response(session, repo, _resolve_source(price_source, source))


@router.delete("/{session_id}")
def delete_session(
    session_id: int,
    machine: SessionStateMachine = Depends(get_session_machine),
) -> dict:
    """Delete an ended session."""
    try:
        machine.delete_session(session_id)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@router.patch("/{session_id}/cards/visibility")
def set_card_visibility(
    session_id: int,
    body: CardVisibilityRequest,
    machine: SessionStateMachine = Depends(get_session_machine),
) -> dict:
    """Hide or show one card's price from a source's totals."""
    try:
        machine.set_card_price_visibility(
            body.card_name, PriceSource(body.price_source), body.hidden, session_id=session_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}
