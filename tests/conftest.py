"""Pytest configuration and shared fixtures."""

from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

import pytest

from divtrack.core.models import (
    ExchangeFeedEntry,
    Game,
    PriceSnapshot,
    PriceSource,
    SnapshotCardPrice,
    StashFeedEntry,
)
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.prices.client import ExchangeFeed, PriceClient, StashFeed


@pytest.fixture
def db(tmp_path):
    """Create a temporary, fully migrated database."""
    db = Database(tmp_path / "test.db")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def repo(db):
    """Create a repository."""
    return Repository(db)


@pytest.fixture
def standard(repo):
    """The poe1 Standard league."""
    return repo.ensure_standard_league(Game.POE1)


@pytest.fixture
def make_snapshot(repo):
    """Store a snapshot for a league from {card: (exchange_chaos, stash_chaos)}."""

    def _make(league_id: int, prices: dict, deck_cost: float = 0.0, ratio: float = 100.0):
        card_prices = []
        for name, (exchange, stash) in prices.items():
            if exchange is not None:
                card_prices.append(
                    SnapshotCardPrice(name, PriceSource.EXCHANGE, exchange, round(exchange / ratio, 2))
                )
            if stash is not None:
                card_prices.append(
                    SnapshotCardPrice(name, PriceSource.STASH, stash, round(stash / ratio, 2))
                )
        return repo.insert_snapshot(
            PriceSnapshot(
                id=None,
                league_id=league_id,
                fetched_at=datetime.now(),
                exchange_chaos_to_divine=ratio,
                stash_chaos_to_divine=ratio,
                stacked_deck_chaos_cost=deck_cost,
                card_prices=card_prices,
            )
        )

    return _make


@pytest.fixture
def mock_price_client():
    """A PriceClient returning a small fixed price list."""
    client = Mock(spec=PriceClient)
    client.fetch_exchange.return_value = ExchangeFeed(
        chaos_to_divine=150.0,
        entries=[
            ExchangeFeedEntry("The Doctor", 1200.0),
            ExchangeFeedEntry("The Fool", 3.0),
        ],
    )
    client.fetch_stash.return_value = StashFeed(
        chaos_to_divine=148.0,
        entries=[
            StashFeedEntry("The Doctor", 1180.0, 7.97, 8, 40, True),
            StashFeedEntry("Rain of Chaos", 0.5, 0.0, 8, 300, True),
        ],
    )
    client.fetch_stacked_deck_cost.return_value = 4.0
    return client


@pytest.fixture
def write_log(tmp_path):
    """Write lines to a temp client log and return its path."""

    def _write(lines: list[str], name: str = "Client.txt") -> Path:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            for line in lines:
                f.write(line + "\n")
        return path

    return _write
