"""Tests for the league service."""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from divtrack.core.errors import NotFoundError, TransientFetchError
from divtrack.core.models import Game, League
from divtrack.prices.client import LeagueClient
from divtrack.prices.leagues import LeagueService


@pytest.fixture
def league_client():
    client = Mock(spec=LeagueClient)
    client.fetch_leagues.return_value = [
        League(None, Game.POE1, "Standard"),
        League(None, Game.POE1, "Settlers", start_date=datetime(2024, 7, 26)),
        League(None, Game.POE1, "Necropolis", end_date=datetime.now() - timedelta(days=30)),
    ]
    return client


@pytest.fixture
def service(repo, league_client):
    return LeagueService(repo, client=league_client)


class TestLeagueService:
    """Tests for LeagueService."""

    def test_ensure_defaults(self, service, repo):
        service.ensure_defaults()
        assert repo.get_league_by_name(Game.POE1, "Standard") is not None
        assert repo.get_league_by_name(Game.POE2, "Standard") is not None

    def test_refresh_upserts(self, service):
        leagues = service.refresh(Game.POE1)
        names = {l.name for l in leagues}
        assert names == {"Standard", "Settlers", "Necropolis"}

    def test_refresh_twice_no_duplicates(self, service, repo):
        service.refresh(Game.POE1)
        service.refresh(Game.POE1)
        assert len(repo.get_leagues(Game.POE1)) == 3

    def test_refresh_marks_ended(self, service, repo):
        service.refresh(Game.POE1)
        assert not repo.get_league_by_name(Game.POE1, "Necropolis").is_active
        assert repo.get_league_by_name(Game.POE1, "Settlers").is_active

    def test_refresh_failure_keeps_stored(self, service, league_client, repo):
        service.refresh(Game.POE1)
        league_client.fetch_leagues.side_effect = TransientFetchError("down")

        with pytest.raises(TransientFetchError):
            service.refresh(Game.POE1)
        assert len(repo.get_leagues(Game.POE1)) == 3

    def test_list_always_has_standard(self, service):
        leagues = service.list_leagues(Game.POE2)
        assert [l.name for l in leagues] == ["Standard"]

    def test_get(self, service, standard):
        assert service.get(standard.id).name == "Standard"
        with pytest.raises(NotFoundError):
            service.get(999)
