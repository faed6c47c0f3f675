"""Price snapshot API routes."""

from fastapi import APIRouter, Depends, HTTPException

from divtrack.api.dependencies import get_price_manager
from divtrack.api.schemas import CardPriceResponse, SnapshotResponse
from divtrack.core.errors import NotFoundError, TransientFetchError
from divtrack.core.models import PriceSnapshot
from divtrack.prices.manager import PriceSnapshotManager

router = APIRouter(prefix="/api/prices", tags=["prices"])


def _snapshot_to_response(snapshot: PriceSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        id=snapshot.id,
        league_id=snapshot.league_id,
        fetched_at=snapshot.fetched_at,
        exchange_chaos_to_divine=snapshot.exchange_chaos_to_divine,
        stash_chaos_to_divine=snapshot.stash_chaos_to_divine,
        stacked_deck_chaos_cost=snapshot.stacked_deck_chaos_cost,
        card_count=len(snapshot.card_names()),
        card_prices=[
            CardPriceResponse(
                card_name=p.card_name,
                price_source=p.price_source.value,
                chaos_value=p.chaos_value,
                divine_value=p.divine_value,
                stack_size=p.stack_size,
                confidence=p.confidence,
            )
            for p in snapshot.card_prices
        ],
    )


@router.post("/{league_id}/refresh", response_model=SnapshotResponse)
def refresh_prices(
    league_id: int,
    prices: PriceSnapshotManager = Depends(get_price_manager),
) -> SnapshotResponse:
    """Fetch both price feeds and store a new snapshot. 503 if a feed is unreachable."""
    try:
        snapshot = prices.refresh(league_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientFetchError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _snapshot_to_response(snapshot)


@router.get("/{league_id}/latest", response_model=SnapshotResponse)
def get_latest_snapshot(
    league_id: int,
    prices: PriceSnapshotManager = Depends(get_price_manager),
) -> SnapshotResponse:
    """Most recent snapshot for a league. 404 if prices were never fetched."""
    snapshot = prices.latest(league_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No price snapshot for league")
    return _snapshot_to_response(snapshot)
