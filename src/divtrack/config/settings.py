"""Configuration and settings management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from divtrack.core.models import Game, PriceSource


# Common game installation locations (Steam and standalone client)
GAME_DIR_NAMES = {
    Game.POE1: "Path of Exile",
    Game.POE2: "Path of Exile 2",
}

LIBRARY_ROOTS = [
    Path("C:/Program Files (x86)/Steam/steamapps/common"),
    Path("C:/Program Files/Steam/steamapps/common"),
    Path("D:/Steam/steamapps/common"),
    Path("D:/SteamLibrary/steamapps/common"),
    Path("E:/Steam/steamapps/common"),
    Path("E:/SteamLibrary/steamapps/common"),
    Path("C:/Program Files (x86)/Grinding Gear Games"),
    Path("C:/Program Files/Grinding Gear Games"),
    Path.home() / ".steam/steam/steamapps/common",
]

# Relative path to the client log within the game directory
LOG_RELATIVE_PATH = Path("logs/Client.txt")

LOG_FILE_NAME = "Client.txt"


def resolve_log_path(user_path: str) -> Optional[Path]:
    """
    Resolve a user-provided path to the client log file.

    Accepts the log file itself, the logs directory or the game root.

    Returns:
        Path to log file if found, None otherwise
    """
    path = Path(user_path)

    if not path.exists():
        return None

    if path.is_file() and path.name.lower() == LOG_FILE_NAME.lower():
        return path

    if path.is_dir():
        direct_log = path / LOG_FILE_NAME
        if direct_log.exists():
            return direct_log

        log_path = path / LOG_RELATIVE_PATH
        if log_path.exists():
            return log_path

    return None


def find_log_file(game: Game = Game.POE1, custom_game_dir: Optional[str] = None) -> Optional[Path]:
    """
    Auto-detect the client log location for a game.

    Checks custom directory first (if provided), then common library locations.
    """
    if custom_game_dir:
        resolved = resolve_log_path(custom_game_dir)
        if resolved:
            return resolved

    dir_name = GAME_DIR_NAMES[game]
    for root in LIBRARY_ROOTS:
        log_path = root / dir_name / LOG_RELATIVE_PATH
        if log_path.exists():
            return log_path
    return None


def get_default_db_path() -> Path:
    """
    Get the default database path.

    Uses %LOCALAPPDATA%/DivTrack/divtrack.db on Windows.
    """
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        return Path(local_app_data) / "DivTrack" / "divtrack.db"
    return Path.home() / ".divtrack" / "divtrack.db"


def get_portable_db_path() -> Path:
    """Get the portable database path (data/divtrack.db in current directory)."""
    return Path.cwd() / "data" / "divtrack.db"


@dataclass
class Settings:
    """Application settings."""

    # Path to game client log file
    log_path: Optional[Path] = None

    # Path to database file
    db_path: Path = field(default_factory=get_default_db_path)

    # Use portable mode (data beside exe)
    portable: bool = False

    # Game whose log is tailed
    game: Game = Game.POE1

    # Preferred price source for valuation
    price_source: PriceSource = PriceSource.EXCHANGE

    # Poll interval for log tailing (seconds)
    poll_interval: float = 0.5

    # Network timeout for a single price feed request (seconds)
    fetch_timeout: float = 15.0

    # Reuse a snapshot younger than this when a session starts (hours)
    snapshot_reuse_hours: float = 6.0

    # Background price refresh interval while a session runs (hours)
    auto_refresh_hours: float = 4.0

    def __post_init__(self) -> None:
        if self.portable:
            self.db_path = get_portable_db_path()

        if self.log_path is None:
            self.log_path = find_log_file(self.game)

    @classmethod
    def from_args(
        cls,
        log_path: Optional[str] = None,
        db_path: Optional[str] = None,
        portable: bool = False,
        game: Optional[str] = None,
        price_source: Optional[str] = None,
    ) -> "Settings":
        """Create settings from CLI arguments."""
        return cls(
            log_path=Path(log_path) if log_path else None,
            db_path=Path(db_path) if db_path else get_default_db_path(),
            portable=portable,
            game=Game(game) if game else Game.POE1,
            price_source=PriceSource(price_source) if price_source else PriceSource.EXCHANGE,
        )

    def validate(self) -> list[str]:
        """
        Validate settings.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.log_path and not self.log_path.exists():
            errors.append(f"Log file not found: {self.log_path}")

        if self.poll_interval <= 0:
            errors.append(f"Poll interval must be positive: {self.poll_interval}")

        if self.fetch_timeout <= 0:
            errors.append(f"Fetch timeout must be positive: {self.fetch_timeout}")

        return errors
