"""CLI commands for testing and manual operation."""

import argparse
import logging
import signal
import time
from typing import Optional

from divtrack.collector.collector import Collector
from divtrack.config.logging import get_logger, setup_logging
from divtrack.config.preferences import load_preferences
from divtrack.config.settings import Settings, find_log_file
from divtrack.core.errors import DivTrackError, MigrationError, NotFoundError, TransientFetchError
from divtrack.core.models import ItemDropped, LogEvent, PriceSource, Session, StackedDeckOpened
from divtrack.core.session_machine import SessionStateMachine
from divtrack.core.stats import compute_session_stats
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.prices.leagues import LeagueService
from divtrack.prices.manager import PriceSnapshotManager
from divtrack.prices.client import PriceClient


def _settings(args: argparse.Namespace, log_path: Optional[str] = None) -> Settings:
    prefs = load_preferences()
    return Settings.from_args(
        log_path=log_path,
        db_path=args.db,
        portable=args.portable,
        game=args.game,
        price_source=args.price_source or prefs.price_source,
    )


def _log_level(args: argparse.Namespace) -> int:
    return logging.DEBUG if args.verbose else logging.INFO


def _open_db(settings: Settings) -> Optional[Database]:
    """Connect and migrate, printing the failure instead of raising."""
    db = Database(settings.db_path)
    try:
        db.connect()
    except MigrationError as e:
        print(f"Error: {e}")
        print("The database was left at the last successful migration.")
        return None
    return db


def _print_event(event: LogEvent, machine: SessionStateMachine) -> None:
    """Print a counted event to console."""
    session = machine.snapshot()
    if session is None:
        return
    if isinstance(event, ItemDropped):
        print(f"  +1 {event.card_name} ({session.cards.get(event.card_name, 0)} this session)")
    elif isinstance(event, StackedDeckOpened):
        print(f"  Stacked deck opened ({session.decks_opened} this session)")


def _print_session(session: Session, repo: Repository, source: PriceSource) -> None:
    league = repo.get_league(session.league_id)
    snapshot = (
        repo.get_snapshot(session.snapshot_id)
        if session.snapshot_id is not None
        else repo.get_latest_snapshot(session.league_id)
    )
    stats = compute_session_stats(session.cards, session.decks_opened, snapshot, source)
    status = "active" if session.is_active else "ended"
    minutes = int(session.duration_seconds // 60)
    league_name = league.name if league else "?"

    print(
        f"#{session.id:<5} {session.started_at:%Y-%m-%d %H:%M}  {league_name:<24} "
        f"{status:<7} {minutes:>4}m  cards={stats.total_count:<5} "
        f"decks={stats.decks_opened:<5} value={stats.total_value:,.1f}c"
    )


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize database and seed Standard leagues."""
    settings = _settings(args)
    print(f"Initializing database at: {settings.db_path}")

    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    LeagueService(repo).ensure_defaults()
    print(f"Applied migrations: {', '.join(db.migration_runner().applied_ids())}")

    db.close()
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending migrations."""
    settings = _settings(args)
    db = Database(settings.db_path)
    try:
        db.connect(migrate=False)
        applied = db.migrate()
    except MigrationError as e:
        print(f"Error: {e}")
        db.close()
        return 1

    if applied:
        for migration_id in applied:
            print(f"Applied {migration_id}")
    else:
        print("Database is up to date")
    db.close()
    return 0


def cmd_rollback(args: argparse.Namespace) -> int:
    """Roll back the most recent migration (or the one named)."""
    settings = _settings(args)
    db = Database(settings.db_path)
    db.connect(migrate=False)
    runner = db.migration_runner()

    applied = runner.applied_ids()
    if not applied:
        print("No migrations applied")
        db.close()
        return 1

    migration_id = args.migration or applied[-1]
    try:
        runner.rollback(migration_id)
    except (MigrationError, NotFoundError) as e:
        print(f"Error: {e}")
        db.close()
        return 1

    print(f"Rolled back {migration_id}")
    db.close()
    return 0


def cmd_parse_file(args: argparse.Namespace) -> int:
    """Parse a log file into the active session (non-blocking)."""
    settings = _settings(args, log_path=args.file)

    if not settings.log_path:
        print("Error: No log file specified and auto-detect failed")
        return 1

    if not settings.log_path.exists():
        print(f"Error: Log file not found: {settings.log_path}")
        return 1

    print(f"Parsing: {settings.log_path}")
    print(f"Database: {settings.db_path}")

    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    machine = SessionStateMachine(repo, settings.game)
    collector = Collector(
        db=db,
        log_path=settings.log_path,
        machine=machine,
        on_event=lambda e: _print_event(e, machine),
    )
    collector.initialize()
    if machine.snapshot() is None:
        print("Warning: No active session; drops will not be counted (run 'start' first)")

    line_count = collector.process_file(from_beginning=not args.resume)
    print(f"\nProcessed {line_count} lines")

    db.close()
    return 0


def cmd_tail(args: argparse.Namespace) -> int:
    """Live tail log file with drop output."""
    settings = _settings(args, log_path=args.file)

    if not settings.log_path:
        print("Error: No log file specified and auto-detect failed")
        detected = find_log_file(settings.game)
        if detected:
            print(f"  Detected: {detected}")
        return 1

    if not settings.log_path.exists():
        print(f"Error: Log file not found: {settings.log_path}")
        return 1

    print(f"Tailing: {settings.log_path}")
    print(f"Database: {settings.db_path}")
    print("Press Ctrl+C to stop\n")

    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    machine = SessionStateMachine(repo, settings.game)
    collector = Collector(
        db=db,
        log_path=settings.log_path,
        machine=machine,
        on_event=lambda e: _print_event(e, machine),
    )
    collector.initialize()

    stopping = False

    def signal_handler(sig, frame):
        nonlocal stopping
        print("\nStopping...")
        stopping = True

    signal.signal(signal.SIGINT, signal_handler)

    collector.start(poll_interval=settings.poll_interval)
    try:
        while not stopping and collector.is_running:
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        collector.stop()

    db.close()
    return 0


def cmd_start(args: argparse.Namespace) -> int:
    """Start a session."""
    settings = _settings(args)
    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    LeagueService(repo).ensure_defaults()
    machine = SessionStateMachine(repo, settings.game)
    machine.load_active()

    league_id = args.league_id
    if args.league:
        league = repo.get_league_by_name(settings.game, args.league)
        if league is None:
            print(f"Error: Unknown league '{args.league}' (try 'refresh-prices --leagues')")
            db.close()
            return 1
        league_id = league.id

    try:
        session = machine.start(league_id)
    except DivTrackError as e:
        print(f"Error: {e}")
        db.close()
        return 1

    league = repo.get_league(session.league_id)
    print(f"Started session #{session.id} in {league.name}")
    db.close()
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    """Stop the active session and print its summary."""
    settings = _settings(args)
    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    machine = SessionStateMachine(repo, settings.game)
    machine.load_active()

    try:
        session = machine.stop()
    except DivTrackError as e:
        print(f"Error: {e}")
        db.close()
        return 1

    print("Session ended:")
    _print_session(session, repo, settings.price_source)
    db.close()
    return 0


def cmd_show_sessions(args: argparse.Namespace) -> int:
    """List recent sessions."""
    settings = _settings(args)
    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    sessions, total = repo.list_sessions(game=settings.game, page=1, page_size=args.limit)

    if not sessions:
        print("No sessions recorded")
    for session in sessions:
        _print_session(session, repo, settings.price_source)
    if total > len(sessions):
        print(f"... {total - len(sessions)} more")

    db.close()
    return 0


def cmd_refresh_prices(args: argparse.Namespace) -> int:
    """Refresh leagues and/or the price snapshot for a league."""
    settings = _settings(args)
    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    leagues = LeagueService(repo)
    leagues.ensure_defaults()

    try:
        if args.leagues:
            for league in leagues.refresh(settings.game):
                print(f"  [{league.id}] {league.name}{'' if league.is_active else ' (ended)'}")

        name = args.league or "Standard"
        league = repo.get_league_by_name(settings.game, name)
        if league is None:
            print(f"Error: Unknown league '{name}'")
            db.close()
            return 1

        manager = PriceSnapshotManager(repo, PriceClient(timeout=settings.fetch_timeout))
        snapshot = manager.refresh(league.id)
        manager.shutdown()
    except TransientFetchError as e:
        print(f"Error: {e}")
        db.close()
        return 1

    print(
        f"Snapshot #{snapshot.id} for {league.name}: {len(snapshot.card_prices)} prices, "
        f"1 divine = {snapshot.exchange_chaos_to_divine:.1f}c (exchange) / "
        f"{snapshot.stash_chaos_to_divine:.1f}c (stash), "
        f"stacked deck = {snapshot.stacked_deck_chaos_cost:.2f}c"
    )
    db.close()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the web server with a background collector."""
    from divtrack.version import __version__

    logger = setup_logging(portable=args.portable, console=True, level=_log_level(args))
    logger.info("DivTrack v%s starting...", __version__)

    try:
        import uvicorn
        from divtrack.api.app import create_app
    except ImportError:
        logger.error("FastAPI and Uvicorn are required for the serve command.")
        logger.error("Install with: pip install fastapi uvicorn")
        return 1

    prefs = load_preferences()
    log_path = args.file
    if not log_path and prefs.log_directory:
        found = find_log_file(custom_game_dir=prefs.log_directory)
        if found:
            log_path = str(found)
            logger.info("Using saved log directory: %s", prefs.log_directory)

    settings = _settings(args, log_path=log_path)
    for error in settings.validate():
        logger.warning(error)
    logger.info("Database: %s", settings.db_path)

    db = _open_db(settings)
    if db is None:
        return 1

    repo = Repository(db)
    machine = SessionStateMachine(repo, settings.game)
    price_manager = PriceSnapshotManager(repo, PriceClient(timeout=settings.fetch_timeout))

    collector = None
    if settings.log_path and settings.log_path.exists():
        logger.info("Log file: %s", settings.log_path)
        collector = Collector(db=db, log_path=settings.log_path, machine=machine)
        collector.initialize()
        collector.start(poll_interval=settings.poll_interval)
    else:
        logger.warning("No log file found; drops will not be tracked")
        machine.load_active()

    active = machine.snapshot()
    if active is not None and prefs.auto_refresh_enabled:
        price_manager.start_auto_refresh(active.league_id, settings.auto_refresh_hours * 3600)

    app = create_app(
        db=db,
        log_path=settings.log_path,
        machine=machine,
        price_manager=price_manager,
        collector=collector,
        preferences=prefs,
        game=settings.game,
        auto_refresh_hours=settings.auto_refresh_hours,
    )
    app.state.price_source = settings.price_source

    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    finally:
        if collector:
            collector.stop()
        price_manager.shutdown()
        db.close()
        logger.info("DivTrack stopped")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="divtrack",
        description="Divination card drop tracker",
    )
    parser.add_argument(
        "--db",
        type=str,
        help="Database file path",
    )
    parser.add_argument(
        "--portable",
        action="store_true",
        help="Use portable mode (data in ./data)",
    )
    parser.add_argument(
        "--game",
        choices=["poe1", "poe2"],
        default="poe1",
        help="Game to track (default: poe1)",
    )
    parser.add_argument(
        "--price-source",
        choices=["exchange", "stash"],
        help="Price source for valuation (default: from preferences)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Initialize database")
    subparsers.add_parser("migrate", help="Apply pending schema migrations")

    rollback_parser = subparsers.add_parser("rollback", help="Roll back the latest migration")
    rollback_parser.add_argument(
        "migration",
        type=str,
        nargs="?",
        help="Migration id (must be the latest applied)",
    )

    # parse-file command
    parse_parser = subparsers.add_parser("parse-file", help="Parse a log file")
    parse_parser.add_argument(
        "file",
        type=str,
        nargs="?",
        help="Log file to parse (auto-detects if not specified)",
    )
    parse_parser.add_argument(
        "--resume",
        action="store_true",
        help="Resume from last position instead of the beginning",
    )

    # tail command
    tail_parser = subparsers.add_parser("tail", help="Live tail log file")
    tail_parser.add_argument(
        "file",
        type=str,
        nargs="?",
        help="Log file to tail (auto-detects if not specified)",
    )

    # session commands
    start_parser = subparsers.add_parser("start", help="Start a session")
    league_group = start_parser.add_mutually_exclusive_group()
    league_group.add_argument("--league", type=str, help="League name")
    league_group.add_argument("--league-id", type=int, help="League id")

    subparsers.add_parser("stop", help="Stop the active session")

    sessions_parser = subparsers.add_parser("show-sessions", help="List recent sessions")
    sessions_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of sessions to show (default: 20)",
    )

    # prices
    prices_parser = subparsers.add_parser("refresh-prices", help="Fetch a new price snapshot")
    prices_parser.add_argument(
        "--league",
        type=str,
        help="League name (default: Standard)",
    )
    prices_parser.add_argument(
        "--leagues",
        action="store_true",
        help="Refresh the league list first",
    )

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start web server")
    serve_parser.add_argument(
        "file",
        type=str,
        nargs="?",
        help="Log file to monitor (auto-detects if not specified)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command != "serve":
        setup_logging(portable=args.portable, console=False, level=_log_level(args))

    commands = {
        "init": cmd_init,
        "migrate": cmd_migrate,
        "rollback": cmd_rollback,
        "parse-file": cmd_parse_file,
        "tail": cmd_tail,
        "start": cmd_start,
        "stop": cmd_stop,
        "show-sessions": cmd_show_sessions,
        "refresh-prices": cmd_refresh_prices,
        "serve": cmd_serve,
    }

    try:
        return commands[args.command](args)
    except KeyboardInterrupt:
        get_logger().info("Interrupted")
        return 130
