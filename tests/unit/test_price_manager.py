"""Tests for the price snapshot manager."""

import threading
import time
from datetime import datetime, timedelta

import pytest

from divtrack.core.errors import NotFoundError, TransientFetchError
from divtrack.core.models import ExchangeFeedEntry, PriceSource, StashFeedEntry
from divtrack.prices.manager import PriceSnapshotManager, normalize_entries


@pytest.fixture
def manager(repo, mock_price_client):
    manager = PriceSnapshotManager(repo, client=mock_price_client)
    yield manager
    manager.shutdown()


class TestNormalizeEntries:
    """Tests for normalize_entries."""

    def test_first_row_per_card_wins(self):
        entries = [
            ExchangeFeedEntry("The Fool", 3.0),
            ExchangeFeedEntry("The Fool", 9.0),
            ExchangeFeedEntry("The Doctor", 1200.0),
        ]
        prices = normalize_entries(entries, 100.0)
        assert [(p.card_name, p.chaos_value) for p in prices] == [
            ("The Fool", 3.0),
            ("The Doctor", 1200.0),
        ]

    def test_stash_entries_keep_metadata(self):
        prices = normalize_entries([StashFeedEntry("The Doctor", 1000.0, 5.0, 8, 3, True)], 200.0)
        assert prices[0].price_source is PriceSource.STASH
        assert prices[0].stack_size == 8
        assert prices[0].confidence == 2


class TestRefresh:
    """Tests for PriceSnapshotManager.refresh."""

    def test_stores_snapshot(self, manager, repo, standard):
        snapshot = manager.refresh(standard.id)

        assert snapshot.id is not None
        assert snapshot.exchange_chaos_to_divine == 150.0
        assert snapshot.stash_chaos_to_divine == 148.0
        assert snapshot.stacked_deck_chaos_cost == 4.0
        assert snapshot.price_for("The Doctor", PriceSource.EXCHANGE).chaos_value == 1200.0
        assert snapshot.price_for("Rain of Chaos", PriceSource.STASH).chaos_value == 0.5
        assert repo.get_latest_snapshot(standard.id).id == snapshot.id

    def test_calls_feeds_with_league(self, manager, mock_price_client, standard):
        manager.refresh(standard.id)
        args = mock_price_client.fetch_exchange.call_args[0]
        assert args[1] == "Standard"

    def test_each_refresh_is_new_snapshot(self, manager, repo, standard):
        first = manager.refresh(standard.id)
        second = manager.refresh(standard.id)

        assert second.id != first.id
        assert manager.latest(standard.id).id == second.id
        assert repo.get_latest_snapshot(standard.id).id == second.id
        assert repo.get_snapshot_count(standard.id) == 2

    def test_failure_keeps_previous(self, manager, mock_price_client, repo, standard):
        first = manager.refresh(standard.id)
        mock_price_client.fetch_stash.side_effect = TransientFetchError("stash down")

        with pytest.raises(TransientFetchError):
            manager.refresh(standard.id)

        assert manager.latest(standard.id).id == first.id
        assert repo.get_snapshot_count(standard.id) == 1
        assert manager.last_error == "stash down"

    def test_success_clears_error(self, manager, mock_price_client, standard):
        mock_price_client.fetch_exchange.side_effect = TransientFetchError("down")
        with pytest.raises(TransientFetchError):
            manager.refresh(standard.id)

        mock_price_client.fetch_exchange.side_effect = None
        manager.refresh(standard.id)
        assert manager.last_error is None

    def test_unknown_league(self, manager):
        with pytest.raises(NotFoundError):
            manager.refresh(999)

    def test_refresh_async(self, manager, standard):
        snapshot = manager.refresh_async(standard.id).result(timeout=5)
        assert manager.latest(standard.id).id == snapshot.id

    def test_slow_refresh_does_not_replace_newer(self, manager, repo, standard):
        """A refresh finishing late must not hide a newer snapshot."""
        remember = manager._remember
        release = threading.Event()
        seen = []

        def hold_first(snapshot):
            seen.append(snapshot.id)
            if len(seen) == 1:
                release.wait(timeout=5)
            return remember(snapshot)

        manager._remember = hold_first
        slow = threading.Thread(target=manager.refresh, args=(standard.id,))
        slow.start()
        deadline = time.time() + 5
        while not seen and time.time() < deadline:
            time.sleep(0.01)

        newer = manager.refresh(standard.id)
        release.set()
        slow.join(timeout=5)

        assert seen[0] != newer.id
        assert manager.latest(standard.id).id == newer.id
        assert repo.get_latest_snapshot(standard.id).id == newer.id

    def test_store_lookup_keeps_newer_cached(self, manager, standard, make_snapshot):
        cached = manager.refresh(standard.id)
        older = make_snapshot(standard.id, {"The Fool": (3.0, None)})
        older.fetched_at = cached.fetched_at - timedelta(hours=1)
        assert manager._remember(older).id == cached.id
        assert manager.latest(standard.id).id == cached.id


class TestLatest:
    """Tests for snapshot lookup and reuse."""

    def test_latest_none(self, manager, standard):
        assert manager.latest(standard.id) is None

    def test_latest_from_store(self, manager, standard, make_snapshot):
        stored = make_snapshot(standard.id, {"The Fool": (3.0, None)})
        assert manager.latest(standard.id).id == stored.id

    def test_get_or_refresh_reuses_fresh(self, manager, mock_price_client, standard, make_snapshot):
        stored = make_snapshot(standard.id, {"The Fool": (3.0, None)})

        snapshot = manager.get_or_refresh(standard.id, max_age=timedelta(hours=1))

        assert snapshot.id == stored.id
        mock_price_client.fetch_exchange.assert_not_called()

    def test_get_or_refresh_fetches_when_stale(self, manager, mock_price_client, standard, make_snapshot):
        stored = make_snapshot(standard.id, {"The Fool": (3.0, None)})

        snapshot = manager.get_or_refresh(standard.id, max_age=timedelta(0))

        assert snapshot.id != stored.id
        mock_price_client.fetch_exchange.assert_called_once()

    def test_get_or_refresh_async_logs_failure(self, manager, mock_price_client, standard):
        mock_price_client.fetch_exchange.side_effect = TransientFetchError("down")
        future = manager.get_or_refresh_async(standard.id)

        with pytest.raises(TransientFetchError):
            future.result(timeout=5)


class TestAutoRefresh:
    """Tests for the background refresh loop."""

    def test_start_and_stop(self, manager, standard):
        manager.start_auto_refresh(standard.id, interval=3600)
        assert manager.auto_refresh_league_id == standard.id

        manager.stop_auto_refresh()
        assert manager.auto_refresh_league_id is None

    def test_loop_refreshes(self, manager, repo, standard):
        manager.start_auto_refresh(standard.id, interval=0.05)
        deadline = datetime.now() + timedelta(seconds=5)
        while repo.get_snapshot_count(standard.id) == 0 and datetime.now() < deadline:
            time.sleep(0.01)
        manager.stop_auto_refresh()

        assert repo.get_snapshot_count(standard.id) >= 1

    def test_loop_survives_failure(self, manager, mock_price_client, standard):
        mock_price_client.fetch_exchange.side_effect = TransientFetchError("down")
        manager.start_auto_refresh(standard.id, interval=0.01)
        deadline = datetime.now() + timedelta(seconds=5)
        while mock_price_client.fetch_exchange.call_count < 2 and datetime.now() < deadline:
            time.sleep(0.01)

        assert manager._refresh_thread.is_alive()
        manager.stop_auto_refresh()
