"""Logging configuration for DivTrack."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from divtrack.config.paths import get_data_dir, is_frozen

# Module-level logger
_logger: Optional[logging.Logger] = None

LOGGER_NAME = "divtrack"
LOG_FILENAME = "divtrack.log"
MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_path(portable: bool = False) -> Path:
    """Get the path to the application log file."""
    return get_data_dir(portable=portable) / LOG_FILENAME


def setup_logging(
    portable: bool = False,
    console: bool = True,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        portable: If True, use portable data directory for log file
        console: If True, also log to stdout
        level: Logging level for all handlers

    Returns:
        Configured logger instance
    """
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate handlers if called multiple times
    if logger.handlers:
        _logger = logger
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_path = get_log_path(portable=portable)
    try:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        # Continue without file logging
        print(f"Warning: Could not create log file at {log_path}: {e}")

    if console and not is_frozen():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the application logger.

    Handlers are only attached by setup_logging(); until then records
    propagate to the root logger (which is what pytest's caplog sees).
    """
    if _logger is not None:
        return _logger
    return logging.getLogger(LOGGER_NAME)
