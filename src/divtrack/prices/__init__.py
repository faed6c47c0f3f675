"""Price and league sources for card valuation."""

from divtrack.prices.leagues import LeagueService
from divtrack.prices.manager import PriceSnapshotManager

__all__ = ["LeagueService", "PriceSnapshotManager"]
