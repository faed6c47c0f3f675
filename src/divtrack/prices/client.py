"""HTTP clients for the price and league sources."""

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import TransientFetchError
from divtrack.core.models import ExchangeFeedEntry, Game, League, StashFeedEntry
from divtrack.version import __version__

logger = get_logger()

USER_AGENT = f"DivTrack/{__version__} (divination card tracker)"

# Used when a feed does not report a usable chaos -> divine ratio
DEFAULT_CHAOS_TO_DIVINE = 100.0

DEFAULT_TIMEOUT = 15.0


def fetch_json(url: str, timeout: float = DEFAULT_TIMEOUT) -> Any:
    """
    GET a URL and decode its JSON body.

    Raises:
        TransientFetchError: network failure, HTTP error or undecodable body
    """
    headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    try:
        req = urllib.request.Request(url, headers=headers)
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        raise TransientFetchError(f"HTTP {e.code} {e.reason} from {url}") from e
    except urllib.error.URLError as e:
        raise TransientFetchError(f"Network error fetching {url}: {e.reason}") from e
    except OSError as e:
        raise TransientFetchError(f"Network error fetching {url}: {e}") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TransientFetchError(f"Invalid response from {url}: {e}") from e


@dataclass
class ExchangeFeed:
    chaos_to_divine: float
    entries: list[ExchangeFeedEntry] = field(default_factory=list)


@dataclass
class StashFeed:
    chaos_to_divine: float
    entries: list[StashFeedEntry] = field(default_factory=list)


def parse_exchange_feed(data: dict) -> ExchangeFeed:
    """
    Normalize a currency-exchange overview response.

    Items and lines are parallel lists; only items in the Cards category are
    kept. The divine rate is divines per chaos, so the ratio is its inverse.
    """
    if not isinstance(data, dict):
        raise TransientFetchError("Unexpected exchange feed payload")
    try:
        rate = float(((data.get("core") or {}).get("rates") or {}).get("divine") or 0)
    except (TypeError, ValueError):
        rate = 0.0
    ratio = 1 / rate if rate > 0 else DEFAULT_CHAOS_TO_DIVINE

    items = data.get("items") or []
    lines = data.get("lines") or []
    entries = []
    for item, line in zip(items, lines):
        if item.get("category") != "Cards" or not item.get("name"):
            continue
        value = line.get("primaryValue")
        if value is None:
            continue
        entries.append(ExchangeFeedEntry(card_name=item["name"], chaos_value=float(value)))
    return ExchangeFeed(chaos_to_divine=ratio, entries=entries)


def parse_stash_feed(data: dict) -> StashFeed:
    """
    Normalize a stash item overview response.

    The ratio comes from the first card with both a positive chaos and a
    positive divine value.
    """
    if not isinstance(data, dict):
        raise TransientFetchError("Unexpected stash feed payload")
    lines = data.get("lines") or []

    ratio = DEFAULT_CHAOS_TO_DIVINE
    for line in lines:
        chaos = line.get("chaosValue") or 0
        divine = line.get("divineValue") or 0
        if chaos > 0 and divine > 0:
            ratio = chaos / divine
            break

    entries = []
    for line in lines:
        if not line.get("name") or line.get("chaosValue") is None:
            continue
        spark = (line.get("sparkLine") or {}).get("data")
        entries.append(
            StashFeedEntry(
                card_name=line["name"],
                chaos_value=float(line["chaosValue"]),
                divine_value=float(line.get("divineValue") or 0),
                stack_size=line.get("stackSize"),
                listing_count=int(line.get("count") or 0),
                has_sparkline=isinstance(spark, list) and len(spark) > 0,
            )
        )
    return StashFeed(chaos_to_divine=ratio, entries=entries)


class PriceClient:
    """Client for the poe.ninja exchange, stash and currency feeds."""

    BASE_URL = "https://poe.ninja"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def _exchange_url(self, game: Game, league_name: str, item_type: str) -> str:
        query = urllib.parse.urlencode({"league": league_name, "type": item_type})
        return f"{self.BASE_URL}/{game.value}/api/economy/exchange/current/overview?{query}"

    def fetch_exchange(
        self, game: Game, league_name: str, timeout: Optional[float] = None
    ) -> ExchangeFeed:
        url = self._exchange_url(game, league_name, "DivinationCard")
        feed = parse_exchange_feed(fetch_json(url, timeout or self.timeout))
        logger.info("Fetched %d exchange prices for %s", len(feed.entries), league_name)
        return feed

    def fetch_stash(
        self, game: Game, league_name: str, timeout: Optional[float] = None
    ) -> StashFeed:
        query = urllib.parse.urlencode({"league": league_name, "type": "DivinationCard"})
        url = f"{self.BASE_URL}/api/data/itemoverview?{query}"
        feed = parse_stash_feed(fetch_json(url, timeout or self.timeout))
        logger.info("Fetched %d stash prices for %s", len(feed.entries), league_name)
        return feed

    def fetch_stacked_deck_cost(
        self, game: Game, league_name: str, timeout: Optional[float] = None
    ) -> float:
        """Chaos cost of one stacked deck, or 0.0 when unavailable."""
        url = self._exchange_url(game, league_name, "Currency")
        try:
            data = fetch_json(url, timeout or self.timeout)
        except TransientFetchError as e:
            logger.warning("Stacked deck price unavailable, using 0: %s", e)
            return 0.0
        if not isinstance(data, dict):
            return 0.0
        for line in data.get("lines") or []:
            if line.get("id") == "stacked-deck":
                return float(line.get("primaryValue") or 0)
        return 0.0


def _parse_league_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Stored naive in local time like every other timestamp
    return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed


class LeagueClient:
    """Client for the official league lists."""

    URLS = {
        Game.POE1: "https://www.pathofexile.com/api/leagues",
        Game.POE2: "https://www.pathofexile.com/api/trade2/data/leagues",
    }

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def fetch_leagues(self, game: Game) -> list[League]:
        """
        Fetch the current leagues for a game.

        Solo (SSF) variants are excluded.

        Raises:
            TransientFetchError: the league source is unreachable
        """
        data = fetch_json(self.URLS[game], self.timeout)
        if game is Game.POE2:
            rows = (data or {}).get("result") or []
            return [
                League(id=None, game=game, name=row["text"])
                for row in rows
                if row.get("text")
            ]

        leagues = []
        for row in data or []:
            if any(rule.get("name") == "Solo" for rule in row.get("rules") or []):
                continue
            name = row.get("name") or row.get("id")
            if not name:
                continue
            leagues.append(
                League(
                    id=None,
                    game=game,
                    name=name,
                    start_date=_parse_league_date(row.get("startAt")),
                    end_date=_parse_league_date(row.get("endAt")),
                )
            )
        return leagues
