"""Tests for session statistics."""

from datetime import datetime, timedelta

import pytest

from divtrack.core.models import PriceSnapshot, PriceSource, SnapshotCardPrice
from divtrack.core.stats import compute_session_stats


@pytest.fixture
def snapshot():
    return PriceSnapshot(
        id=1,
        league_id=1,
        fetched_at=datetime(2025, 1, 1),
        exchange_chaos_to_divine=100.0,
        stash_chaos_to_divine=100.0,
        stacked_deck_chaos_cost=4.0,
        card_prices=[
            SnapshotCardPrice("The Doctor", PriceSource.EXCHANGE, 1200.0, 12.0),
            SnapshotCardPrice("The Fool", PriceSource.EXCHANGE, 3.0, 0.03),
            SnapshotCardPrice("Rain of Chaos", PriceSource.EXCHANGE, 0.5, 0.01),
            SnapshotCardPrice("The Nurse", PriceSource.EXCHANGE, 1200.0, 12.0),
        ],
    )


class TestComputeSessionStats:
    """Tests for compute_session_stats."""

    def test_totals(self, snapshot):
        stats = compute_session_stats(
            {"The Fool": 2, "Rain of Chaos": 4}, 3, snapshot, PriceSource.EXCHANGE
        )
        assert stats.total_count == 6
        assert stats.unique_cards == 2
        assert stats.total_value == 8.0
        assert stats.total_value_divine == 0.08
        assert stats.net_profit == 8.0 - 3 * 4.0

    def test_ratios(self, snapshot):
        stats = compute_session_stats(
            {"The Fool": 1, "Rain of Chaos": 3}, 0, snapshot, PriceSource.EXCHANGE
        )
        ratios = {e.card_name: e.ratio for e in stats.cards}
        assert ratios == {"The Fool": 0.25, "Rain of Chaos": 0.75}

    def test_sorted_by_value(self, snapshot):
        stats = compute_session_stats(
            {"Rain of Chaos": 10, "The Doctor": 1, "The Fool": 1}, 0, snapshot, PriceSource.EXCHANGE
        )
        assert [e.card_name for e in stats.cards] == ["The Doctor", "Rain of Chaos", "The Fool"]

    def test_most_valuable(self, snapshot):
        stats = compute_session_stats(
            {"The Doctor": 1, "The Fool": 5}, 0, snapshot, PriceSource.EXCHANGE
        )
        assert stats.most_valuable.card_name == "The Doctor"

    def test_most_valuable_tie_goes_to_first_seen(self, snapshot):
        now = datetime.now()
        stats = compute_session_stats(
            {"The Doctor": 1, "The Nurse": 1},
            0,
            snapshot,
            PriceSource.EXCHANGE,
            first_seen={"The Nurse": now, "The Doctor": now + timedelta(minutes=1)},
        )
        assert stats.most_valuable.card_name == "The Nurse"

    def test_most_valuable_tie_without_times_uses_name(self, snapshot):
        stats = compute_session_stats(
            {"The Nurse": 1, "The Doctor": 1}, 0, snapshot, PriceSource.EXCHANGE
        )
        assert stats.most_valuable.card_name == "The Doctor"

    def test_hidden_card_excluded_from_value(self, snapshot):
        stats = compute_session_stats(
            {"The Doctor": 1, "The Fool": 2},
            0,
            snapshot,
            PriceSource.EXCHANGE,
            hidden_cards=["The Doctor"],
        )
        assert stats.total_value == 6.0
        assert stats.total_count == 3
        assert stats.most_valuable.card_name == "The Fool"
        doctor = next(e for e in stats.cards if e.card_name == "The Doctor")
        assert doctor.hidden

    def test_unpriced_cards(self, snapshot):
        stats = compute_session_stats(
            {"The Fool": 1, "House of Mirrors": 1, "A Chilling Wind": 2},
            0,
            snapshot,
            PriceSource.EXCHANGE,
        )
        assert stats.unpriced == ["A Chilling Wind", "House of Mirrors"]
        assert stats.total_value == 3.0

    def test_no_snapshot(self):
        stats = compute_session_stats({"The Fool": 2}, 2, None, PriceSource.STASH)
        assert stats.total_value == 0.0
        assert stats.total_value_divine == 0.0
        assert stats.net_profit == 0.0
        assert stats.most_valuable is None
        assert stats.unpriced == ["The Fool"]

    def test_empty(self, snapshot):
        stats = compute_session_stats({}, 0, snapshot, PriceSource.EXCHANGE)
        assert stats.total_count == 0
        assert stats.cards == []
        assert stats.most_valuable is None
