"""Card valuation against a price snapshot.

Merges the two price sources into one value per card and converts between
chaos and divine using the ratio stored with the snapshot.
"""

from dataclasses import dataclass
from typing import Optional

from divtrack.core.models import PriceSnapshot, PriceSource


@dataclass(frozen=True)
class CardValuation:
    """Unit value of one card and where it came from."""

    chaos_value: float
    divine_value: float
    source: Optional[PriceSource]  # None when unpriced
    is_priced: bool
    is_fallback: bool = False

    @classmethod
    def unpriced(cls) -> "CardValuation":
        return cls(chaos_value=0.0, divine_value=0.0, source=None, is_priced=False)


def to_divine(chaos_value: float, snapshot: PriceSnapshot, source: PriceSource) -> float:
    """Convert a chaos value to divine using the snapshot's ratio for a source.

    Args:
        chaos_value: Value in chaos
        snapshot: Snapshot holding the conversion ratios
        source: Which source's ratio to use

    Returns:
        Value in divine (rounded to 2 places), 0.0 if the ratio is unusable
    """
    ratio = snapshot.chaos_to_divine(source)
    if ratio <= 0:
        return 0.0
    return round(chaos_value / ratio, 2)


def resolve_card_value(
    card_name: str,
    snapshot: Optional[PriceSnapshot],
    source: PriceSource,
) -> CardValuation:
    """Value a card, preferring the selected source.

    A card missing from the selected source falls back to the other source.
    A card priced by neither is returned as unpriced (zero value with
    is_priced=False) so callers can tell it apart from a worthless card.

    Args:
        card_name: Card to value
        snapshot: Price snapshot, or None if prices were never fetched
        source: The user's selected price source

    Returns:
        CardValuation for one card
    """
    if snapshot is None:
        return CardValuation.unpriced()

    for candidate in (source, source.other):
        price = snapshot.price_for(card_name, candidate)
        if price is not None:
            return CardValuation(
                chaos_value=price.chaos_value,
                divine_value=to_divine(price.chaos_value, snapshot, candidate),
                source=candidate,
                is_priced=True,
                is_fallback=candidate is not source,
            )

    return CardValuation.unpriced()


def get_card_value(valuation: CardValuation, count: int) -> float:
    """Total chaos value of count copies (0 for unpriced cards)."""
    return valuation.chaos_value * count
