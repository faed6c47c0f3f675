"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LeagueResponse(BaseModel):
    """Single league."""

    id: int
    game: str
    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool


class LeagueListResponse(BaseModel):
    leagues: list[LeagueResponse]


class CardLine(BaseModel):
    """One card in a session breakdown."""

    card_name: str
    count: int
    ratio: float  # count / total cards
    chaos_value: float  # Unit value (0 when unpriced)
    divine_value: float
    total_value: float  # count * chaos_value
    price_source: Optional[str] = None  # Source the value came from
    is_priced: bool
    is_fallback: bool = False  # Valued by the non-selected source
    hidden: bool = False


class SessionResponse(BaseModel):
    """Session with its derived statistics."""

    id: int
    game: str
    league_id: int
    league_name: Optional[str] = None
    snapshot_id: Optional[int] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    is_active: bool
    duration_seconds: float
    total_count: int
    unique_cards: int
    decks_opened: int
    price_source: str
    total_value: float  # chaos, hidden cards excluded
    total_value_divine: float
    net_profit: float
    most_valuable: Optional[CardLine] = None
    cards: list[CardLine]
    unpriced: list[str]


class SessionListItem(BaseModel):
    """Session row in a list (no per-card breakdown)."""

    id: int
    game: str
    league_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    is_active: bool
    total_count: int
    unique_cards: int
    decks_opened: int


class SessionListResponse(BaseModel):
    """Paginated list of sessions."""

    sessions: list[SessionListItem]
    total: int
    page: int
    page_size: int


class StartSessionRequest(BaseModel):
    """Start a session; league_id None uses the client-reported league or Standard."""

    league_id: Optional[int] = None


class CardVisibilityRequest(BaseModel):
    """Hide or show a card's price from one source."""

    card_name: str
    price_source: str = Field(pattern="^(exchange|stash)$")
    hidden: bool


class CardStatsResponse(BaseModel):
    """Card counts aggregated over a scope."""

    scope: str
    total_count: int
    unique_cards: int
    decks_opened: int
    session_count: int
    cards: dict[str, int]


class CardPriceResponse(BaseModel):
    card_name: str
    price_source: str
    chaos_value: float
    divine_value: float
    stack_size: Optional[int] = None
    confidence: int


class SnapshotResponse(BaseModel):
    """Price snapshot for a league."""

    id: int
    league_id: int
    fetched_at: datetime
    exchange_chaos_to_divine: float
    stash_chaos_to_divine: float
    stacked_deck_chaos_cost: float
    card_count: int
    card_prices: list[CardPriceResponse]


class StatusResponse(BaseModel):
    """Server status."""

    status: str
    version: str
    collector_running: bool
    db_path: str
    log_path: Optional[str] = None
    log_path_missing: bool
    session_state: str
    active_session_id: Optional[int] = None
    current_zone: Optional[str] = None
    selected_league: Optional[str] = None
    price_source: str
    pending_events: int = 0
    last_price_error: Optional[str] = None
