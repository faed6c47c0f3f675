"""Session statistics - pure functions over counts and a price snapshot."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from divtrack.core.models import PriceSnapshot, PriceSource
from divtrack.core.pricing import CardValuation, get_card_value, resolve_card_value, to_divine


@dataclass
class CardStatEntry:
    """One card's line in a session breakdown."""

    card_name: str
    count: int
    ratio: float  # count / total_count
    valuation: CardValuation
    total_value: float  # count x unit chaos value
    hidden: bool = False


@dataclass
class SessionStats:
    """Derived statistics for one set of card counts."""

    price_source: PriceSource
    total_count: int
    unique_cards: int
    decks_opened: int
    total_value: float  # chaos, hidden cards excluded
    total_value_divine: float
    net_profit: float  # chaos, after stacked deck cost
    most_valuable: Optional[CardStatEntry] = None
    cards: list[CardStatEntry] = field(default_factory=list)
    unpriced: list[str] = field(default_factory=list)


def compute_session_stats(
    cards: dict[str, int],
    decks_opened: int,
    snapshot: Optional[PriceSnapshot],
    price_source: PriceSource,
    hidden_cards: Iterable[str] = (),
    first_seen: Optional[dict[str, datetime]] = None,
) -> SessionStats:
    """
    Compute session statistics.

    Hidden cards still count towards card totals and ratios but are left out
    of value totals and of the most valuable card. Unpriced cards contribute
    zero value and are listed separately.

    Args:
        cards: Card name -> count
        decks_opened: Stacked decks opened
        snapshot: Price snapshot, or None when no prices exist
        price_source: Selected price source
        hidden_cards: Card names hidden from value calculation for this source
        first_seen: Card name -> first time found, used to break value ties

    Returns:
        SessionStats
    """
    hidden = set(hidden_cards)
    first_seen = first_seen or {}
    total_count = sum(cards.values())

    entries = []
    for card_name, count in cards.items():
        valuation = resolve_card_value(card_name, snapshot, price_source)
        entries.append(
            CardStatEntry(
                card_name=card_name,
                count=count,
                ratio=count / total_count if total_count else 0.0,
                valuation=valuation,
                total_value=get_card_value(valuation, count),
                hidden=card_name in hidden,
            )
        )

    counted = [e for e in entries if not e.hidden]
    total_value = sum(e.total_value for e in counted)

    candidates = [e for e in counted if e.valuation.is_priced]
    most_valuable = None
    if candidates:
        # Highest unit value; ties go to the earliest found, then by name
        most_valuable = min(
            candidates,
            key=lambda e: (
                -e.valuation.chaos_value,
                first_seen.get(e.card_name) or datetime.max,
                e.card_name,
            ),
        )

    deck_cost = snapshot.stacked_deck_chaos_cost if snapshot else 0.0

    entries.sort(key=lambda e: (-e.total_value, -e.count, e.card_name))

    return SessionStats(
        price_source=price_source,
        total_count=total_count,
        unique_cards=len(cards),
        decks_opened=decks_opened,
        total_value=total_value,
        total_value_divine=to_divine(total_value, snapshot, price_source) if snapshot else 0.0,
        net_profit=total_value - decks_opened * deck_cost,
        most_valuable=most_valuable,
        cards=entries,
        unpriced=sorted(e.card_name for e in entries if not e.valuation.is_priced),
    )
