"""Tests for CLI commands."""

import pytest

from divtrack.cli.commands import create_parser, main
from divtrack.db.connection import Database
from divtrack.db.migrations import MIGRATIONS
from divtrack.db.repository import Repository


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


def run(db_path, *args) -> int:
    return main(["--db", str(db_path), *args])


class TestParser:
    """Tests for argument parsing."""

    def test_global_options(self):
        args = create_parser().parse_args(["--game", "poe2", "--price-source", "stash", "stop"])
        assert args.game == "poe2"
        assert args.price_source == "stash"
        assert args.command == "stop"

    def test_start_league_options_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["start", "--league", "Standard", "--league-id", "1"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestMigrationCommands:
    """Tests for init, migrate and rollback."""

    def test_init(self, db_path, capsys):
        assert run(db_path, "init") == 0
        assert MIGRATIONS[-1].id in capsys.readouterr().out

    def test_migrate_up_to_date(self, db_path, capsys):
        run(db_path, "init")
        assert run(db_path, "migrate") == 0
        assert "up to date" in capsys.readouterr().out

    def test_rollback_and_migrate(self, db_path, capsys):
        run(db_path, "init")
        assert run(db_path, "rollback") == 0
        assert f"Rolled back {MIGRATIONS[-1].id}" in capsys.readouterr().out

        assert run(db_path, "migrate") == 0
        assert f"Applied {MIGRATIONS[-1].id}" in capsys.readouterr().out

    def test_rollback_not_latest(self, db_path):
        run(db_path, "init")
        assert run(db_path, "rollback", MIGRATIONS[0].id) == 1


class TestSessionCommands:
    """Tests for start, stop and show-sessions."""

    def test_start_stop(self, db_path, capsys):
        assert run(db_path, "start") == 0
        assert "Started session #1 in Standard" in capsys.readouterr().out

        assert run(db_path, "start") == 1
        assert "already active" in capsys.readouterr().out

        assert run(db_path, "stop") == 0
        assert "Session ended" in capsys.readouterr().out

        db = Database(db_path)
        db.connect()
        try:
            assert Repository(db).get_active_session() is None
        finally:
            db.close()

    def test_stop_without_session(self, db_path):
        assert run(db_path, "stop") == 1

    def test_start_unknown_league(self, db_path, capsys):
        assert run(db_path, "start", "--league", "Nowhere") == 1
        assert "Unknown league" in capsys.readouterr().out

    def test_show_sessions(self, db_path, capsys):
        run(db_path, "start")
        run(db_path, "stop")
        capsys.readouterr()

        assert run(db_path, "show-sessions") == 0
        out = capsys.readouterr().out
        assert "#1" in out
        assert "ended" in out

    def test_parse_file_counts_into_session(self, db_path, write_log, capsys):
        log = write_log([
            "2025/12/01 02:08:10 1 cff945bb [INFO Client 1] : Card drawn from the deck: <divination>{The Fool}",
            "2025/12/01 02:08:11 2 cff945bb [INFO Client 1] : Card drawn from the deck",
        ])
        run(db_path, "start")

        assert run(db_path, "parse-file", str(log)) == 0
        assert "+1 The Fool" in capsys.readouterr().out

        db = Database(db_path)
        db.connect()
        try:
            session = Repository(db).get_active_session()
            assert session.cards == {"The Fool": 1}
            assert session.decks_opened == 1
        finally:
            db.close()
