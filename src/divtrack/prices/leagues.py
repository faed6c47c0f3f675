"""League service - league reference data and league selection."""

from typing import Optional

from divtrack.config.logging import get_logger
from divtrack.core.errors import NotFoundError, TransientFetchError
from divtrack.core.models import Game, League
from divtrack.db.repository import Repository
from divtrack.prices.client import LeagueClient

logger = get_logger()


class LeagueService:
    """Refresh and list leagues. The only writer of league rows besides Standard seeding."""

    def __init__(self, repository: Repository, client: Optional[LeagueClient] = None) -> None:
        self.repository = repository
        self.client = client or LeagueClient()

    def ensure_defaults(self) -> None:
        """Make sure every game has its permanent Standard league."""
        for game in Game:
            self.repository.ensure_standard_league(game)

    def refresh(self, game: Game) -> list[League]:
        """
        Fetch the game's leagues and upsert them.

        Raises:
            TransientFetchError: league source unreachable; stored leagues are kept
        """
        try:
            fetched = self.client.fetch_leagues(game)
        except TransientFetchError as e:
            logger.warning("League refresh for %s failed: %s", game.value, e)
            raise

        for league in fetched:
            self.repository.upsert_league(league)
        self.repository.ensure_standard_league(game)
        logger.info("Refreshed %d %s leagues", len(fetched), game.value)
        return self.list_leagues(game)

    def list_leagues(self, game: Game) -> list[League]:
        """Stored leagues for a game; always includes Standard."""
        self.repository.ensure_standard_league(game)
        return self.repository.get_leagues(game)

    def get(self, league_id: int) -> League:
        league = self.repository.get_league(league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found")
        return league
