"""User preferences management - stored as JSON file."""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from divtrack.config.paths import get_data_dir


PREFS_FILENAME = "preferences.json"


@dataclass
class Preferences:
    """User preferences with defaults."""
    price_source: str = "exchange"
    auto_refresh_enabled: bool = True
    log_directory: Optional[str] = None


def get_prefs_path() -> Path:
    """Get the path to the preferences file."""
    return get_data_dir() / PREFS_FILENAME


def load_preferences(path: Optional[Path] = None) -> Preferences:
    """Load preferences from file, returning defaults if not found."""
    prefs_path = path or get_prefs_path()

    if prefs_path.exists():
        try:
            with open(prefs_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            price_source = data.get("price_source", "exchange")
            if price_source not in ("exchange", "stash"):
                price_source = "exchange"
            return Preferences(
                price_source=price_source,
                auto_refresh_enabled=bool(data.get("auto_refresh_enabled", True)),
                log_directory=data.get("log_directory"),
            )
        except (json.JSONDecodeError, OSError):
            pass

    return Preferences()


def save_preferences(prefs: Preferences, path: Optional[Path] = None) -> bool:
    """Save preferences to file."""
    prefs_path = path or get_prefs_path()

    try:
        prefs_path.parent.mkdir(parents=True, exist_ok=True)
        with open(prefs_path, "w", encoding="utf-8") as f:
            json.dump(asdict(prefs), f, indent=2, ensure_ascii=False)
        return True
    except OSError:
        return False
