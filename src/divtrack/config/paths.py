"""Data directory resolution for frozen (PyInstaller) and source modes."""

import os
import sys
from pathlib import Path


APP_DIR_NAME = "DivTrack"


def is_frozen() -> bool:
    """Check if running as a PyInstaller frozen executable."""
    return getattr(sys, "frozen", False)


def get_app_dir() -> Path:
    """
    Get the application directory.

    In frozen mode: directory containing the exe
    In source mode: project root (contains src/, pyproject.toml)
    """
    if is_frozen():
        return Path(sys.executable).parent
    # Source: this file is at src/divtrack/config/paths.py
    return Path(__file__).resolve().parents[3]


def get_data_dir(portable: bool = False) -> Path:
    """
    Get the data directory for storing database, log and preference files.

    Args:
        portable: If True, use ./data beside the executable

    Returns:
        Path to data directory (created if needed)
    """
    if portable or is_frozen():
        data_dir = get_app_dir() / "data"
    else:
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        if local_app_data:
            data_dir = Path(local_app_data) / APP_DIR_NAME
        else:
            data_dir = Path.home() / ".divtrack"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
