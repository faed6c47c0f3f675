"""Price snapshot manager - fetches, stores and caches card price snapshots."""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Iterable, Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import NotFoundError, TransientFetchError
from divtrack.core.models import FeedEntry, PriceSnapshot, SnapshotCardPrice
from divtrack.db.repository import Repository
from divtrack.prices.client import PriceClient

logger = get_logger()


def normalize_entries(entries: Iterable[FeedEntry], chaos_to_divine: float) -> list[SnapshotCardPrice]:
    """Convert feed entries to card prices, keeping the first row per card name."""
    seen = set()
    prices = []
    for entry in entries:
        if entry.card_name in seen:
            continue
        seen.add(entry.card_name)
        prices.append(entry.to_card_price(chaos_to_divine))
    return prices


class PriceSnapshotManager:
    """
    Owns price snapshots: the only writer of snapshot rows.

    Handles:
    - Fetching both price feeds and storing one immutable snapshot per refresh
    - An in-memory cache of the latest snapshot per league
    - Refreshes on a worker pool so callers never block event processing
    - An optional background loop refreshing one league periodically
    """

    DEFAULT_MAX_AGE = timedelta(hours=6)
    DEFAULT_REFRESH_INTERVAL = 4 * 60 * 60  # seconds

    def __init__(
        self,
        repository: Repository,
        client: Optional[PriceClient] = None,
        max_workers: int = 2,
    ) -> None:
        self.repository = repository
        self.client = client or PriceClient()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="price-refresh")
        self._cache: dict[int, PriceSnapshot] = {}
        self._lock = threading.Lock()
        self._insert_lock = threading.Lock()
        self._last_error: Optional[str] = None

        # Background refresh state
        self._stop_event = threading.Event()
        self._refresh_thread: Optional[threading.Thread] = None
        self._refresh_league_id: Optional[int] = None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def refresh(self, league_id: int, timeout: Optional[float] = None) -> PriceSnapshot:
        """
        Fetch both feeds for a league and store a new snapshot.

        Args:
            league_id: League to price
            timeout: Per-request network timeout (seconds)

        Raises:
            NotFoundError: unknown league
            TransientFetchError: a feed failed; nothing is written and the
                previous snapshot stays latest
        """
        league = self.repository.get_league(league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found")

        try:
            exchange = self.client.fetch_exchange(league.game, league.name, timeout)
            stash = self.client.fetch_stash(league.game, league.name, timeout)
        except TransientFetchError as e:
            self._last_error = str(e)
            logger.warning("Price refresh for %s failed: %s", league.name, e)
            raise
        deck_cost = self.client.fetch_stacked_deck_cost(league.game, league.name, timeout)

        card_prices = normalize_entries(exchange.entries, exchange.chaos_to_divine) + normalize_entries(
            stash.entries, stash.chaos_to_divine
        )
        # fetched_at and id must increase together across concurrent refreshes
        with self._insert_lock:
            snapshot = self.repository.insert_snapshot(
                PriceSnapshot(
                    id=None,
                    league_id=league_id,
                    fetched_at=datetime.now(),
                    exchange_chaos_to_divine=exchange.chaos_to_divine,
                    stash_chaos_to_divine=stash.chaos_to_divine,
                    stacked_deck_chaos_cost=deck_cost,
                    card_prices=card_prices,
                )
            )
        self._remember(snapshot)
        self._last_error = None
        logger.info(
            "Snapshot %d stored for %s: %d prices",
            snapshot.id,
            league.name,
            len(snapshot.card_prices),
        )
        return snapshot

    def refresh_async(self, league_id: int, timeout: Optional[float] = None) -> "Future[PriceSnapshot]":
        """Run refresh() on the worker pool. Cancel or wait on the returned future."""
        return self._executor.submit(self.refresh, league_id, timeout)

    def latest(self, league_id: int) -> Optional[PriceSnapshot]:
        """Most recent snapshot for a league, or None if never fetched."""
        with self._lock:
            cached = self._cache.get(league_id)
        if cached is not None:
            return cached

        snapshot = self.repository.get_latest_snapshot(league_id)
        if snapshot is not None:
            return self._remember(snapshot)
        return snapshot

    def _remember(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        """Cache a snapshot unless a newer one is already cached. Returns the cached one."""
        with self._lock:
            cached = self._cache.get(snapshot.league_id)
            if cached is None or (snapshot.fetched_at, snapshot.id) > (cached.fetched_at, cached.id):
                self._cache[snapshot.league_id] = snapshot
                return snapshot
            return cached

    def get_or_refresh(
        self, league_id: int, max_age: Optional[timedelta] = None
    ) -> PriceSnapshot:
        """Reuse a snapshot younger than max_age, else refresh."""
        max_age = max_age if max_age is not None else self.DEFAULT_MAX_AGE
        snapshot = self.latest(league_id)
        if snapshot is not None and datetime.now() - snapshot.fetched_at < max_age:
            return snapshot
        return self.refresh(league_id)

    def get_or_refresh_async(
        self, league_id: int, max_age: Optional[timedelta] = None
    ) -> "Future[PriceSnapshot]":
        """Run get_or_refresh() on the worker pool; failures are logged."""
        future = self._executor.submit(self.get_or_refresh, league_id, max_age)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("Background price refresh failed: %s", error)

    def start_auto_refresh(self, league_id: int, interval: Optional[float] = None) -> None:
        """Refresh a league every interval seconds until stopped."""
        self.stop_auto_refresh()
        interval = interval if interval is not None else self.DEFAULT_REFRESH_INTERVAL

        self._stop_event.clear()
        self._refresh_league_id = league_id
        self._refresh_thread = threading.Thread(
            target=self._refresh_loop,
            args=(league_id, interval),
            daemon=True,
            name="price-auto-refresh",
        )
        self._refresh_thread.start()
        logger.info("Price auto refresh started for league %d (every %ss)", league_id, interval)

    def stop_auto_refresh(self) -> None:
        """Stop the background refresh loop."""
        self._stop_event.set()
        if self._refresh_thread and self._refresh_thread.is_alive():
            self._refresh_thread.join(timeout=2.0)
        self._refresh_thread = None
        self._refresh_league_id = None

    @property
    def auto_refresh_league_id(self) -> Optional[int]:
        return self._refresh_league_id

    def _refresh_loop(self, league_id: int, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                self.refresh(league_id)
            except (TransientFetchError, NotFoundError) as e:
                logger.warning("Scheduled price refresh failed: %s", e)
            except Exception:
                logger.exception("Unexpected error in scheduled price refresh")

    def shutdown(self) -> None:
        """Stop background work and the worker pool."""
        self.stop_auto_refresh()
        self._executor.shutdown(wait=False, cancel_futures=True)
