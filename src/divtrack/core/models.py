"""Core domain models - dataclasses with no I/O dependencies."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Game(Enum):
    """Supported games (closed set)."""

    POE1 = "poe1"
    POE2 = "poe2"


class PriceSource(Enum):
    """Market a card price was taken from."""

    EXCHANGE = "exchange"
    STASH = "stash"

    @property
    def other(self) -> "PriceSource":
        return PriceSource.STASH if self is PriceSource.EXCHANGE else PriceSource.EXCHANGE


class SessionState(Enum):
    """State of the session state machine."""

    NO_ACTIVE_SESSION = "no_active_session"
    ACTIVE = "active"
    ENDED = "ended"


class StatsScope(Enum):
    """Scope for card statistics."""

    SESSION = "session"
    LEAGUE = "league"
    ALL = "all"


STANDARD_LEAGUE_NAME = "Standard"


@dataclass
class League:
    """A game league (ladder)."""

    id: Optional[int]  # None until persisted
    game: Game
    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None  # None for permanent leagues

    @property
    def is_active(self) -> bool:
        return self.end_date is None or self.end_date > datetime.now()


@dataclass
class SessionCard:
    """Per-session count of one card."""

    card_name: str
    count: int
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    hide_price_exchange: bool = False
    hide_price_stash: bool = False

    def is_hidden(self, source: PriceSource) -> bool:
        if source is PriceSource.EXCHANGE:
            return self.hide_price_exchange
        return self.hide_price_stash


@dataclass
class Session:
    """A bounded window of tracked drops tied to one league."""

    id: Optional[int]  # None until persisted
    game: Game
    league_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    snapshot_id: Optional[int] = None
    cards: dict[str, int] = field(default_factory=dict)
    decks_opened: int = 0

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def total_count(self) -> int:
        return sum(self.cards.values())

    @property
    def unique_cards(self) -> int:
        return len(self.cards)

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or datetime.now()
        return (end - self.started_at).total_seconds()


@dataclass
class SessionSummary:
    """Pre-calculated totals written when a session ends."""

    session_id: int
    game: Game
    league_name: str
    started_at: datetime
    ended_at: datetime
    duration_minutes: int
    total_count: int
    decks_opened: int
    total_exchange_value: float
    total_stash_value: float
    exchange_chaos_to_divine: float
    stash_chaos_to_divine: float
    stacked_deck_chaos_cost: float


@dataclass
class SnapshotCardPrice:
    """Price of one card from one source within a snapshot."""

    card_name: str
    price_source: PriceSource
    chaos_value: float
    divine_value: float
    stack_size: Optional[int] = None
    confidence: int = 1  # 1 = high, 2 = medium, 3 = low


@dataclass
class PriceSnapshot:
    """Immutable, timestamped capture of card prices for a league."""

    id: Optional[int]  # None until persisted
    league_id: int
    fetched_at: datetime
    exchange_chaos_to_divine: float
    stash_chaos_to_divine: float
    stacked_deck_chaos_cost: float = 0.0
    card_prices: list[SnapshotCardPrice] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._index: dict[tuple[str, PriceSource], SnapshotCardPrice] = {
            (p.card_name, p.price_source): p for p in self.card_prices
        }

    def price_for(self, card_name: str, source: PriceSource) -> Optional[SnapshotCardPrice]:
        """Get the price row for a card from one source, if present."""
        return self._index.get((card_name, source))

    def chaos_to_divine(self, source: PriceSource) -> float:
        if source is PriceSource.EXCHANGE:
            return self.exchange_chaos_to_divine
        return self.stash_chaos_to_divine

    def card_names(self, source: Optional[PriceSource] = None) -> set[str]:
        return {name for name, src in self._index if source is None or src is source}


@dataclass
class CardStats:
    """Card counts aggregated over a scope."""

    scope: StatsScope
    total_count: int
    cards: dict[str, int]
    decks_opened: int = 0
    session_count: int = 0


# Raw feed entries (pre-normalization)


@dataclass
class ExchangeFeedEntry:
    """Card row from the currency-exchange feed (value in chaos only)."""

    card_name: str
    chaos_value: float

    def to_card_price(self, chaos_to_divine: float) -> SnapshotCardPrice:
        divine = round(self.chaos_value / chaos_to_divine, 2) if chaos_to_divine > 0 else 0.0
        return SnapshotCardPrice(
            card_name=self.card_name,
            price_source=PriceSource.EXCHANGE,
            chaos_value=self.chaos_value,
            divine_value=divine,
            stack_size=None,
            confidence=1,
        )


@dataclass
class StashFeedEntry:
    """Card row from the stash-listing feed (chaos and divine, with sample info)."""

    card_name: str
    chaos_value: float
    divine_value: float
    stack_size: Optional[int] = None
    listing_count: int = 0
    has_sparkline: bool = True

    @property
    def confidence(self) -> int:
        if not self.has_sparkline:
            return 3
        if self.listing_count >= 10:
            return 1
        return 2

    def to_card_price(self, chaos_to_divine: float) -> SnapshotCardPrice:
        return SnapshotCardPrice(
            card_name=self.card_name,
            price_source=PriceSource.STASH,
            chaos_value=self.chaos_value,
            divine_value=round(self.divine_value, 2),
            stack_size=self.stack_size,
            confidence=self.confidence,
        )


FeedEntry = ExchangeFeedEntry | StashFeedEntry


# Parsed log events


@dataclass
class ItemDropped:
    """One divination card found."""

    card_name: str
    stack_size: int = 1
    event_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    raw_line: str = ""


@dataclass
class StackedDeckOpened:
    """A stacked deck was opened."""

    event_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    raw_line: str = ""


@dataclass
class ZoneChanged:
    """Player entered a zone."""

    zone_name: str
    timestamp: Optional[datetime] = None
    raw_line: str = ""


@dataclass
class LeagueDetected:
    """Client reported the league it is connected to."""

    name: str
    timestamp: Optional[datetime] = None
    raw_line: str = ""


# Type alias for any parsed event
LogEvent = ItemDropped | StackedDeckOpened | ZoneChanged | LeagueDetected
