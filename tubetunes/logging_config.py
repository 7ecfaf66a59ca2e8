"""
Logging configuration for tubetunes.
"""
import copy
import logging
import sys
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        # Color a copy; other handlers share the record
        record = copy.copy(record)
        color = self.COLORS.get(record.levelname, '')
        record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None,
                  console: bool = True) -> None:
    """Setup logging configuration for tubetunes.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        console: Whether to log to stdout. The interactive UI owns the
            terminal, so it turns this off and relies on ``log_file``.
    """
    logger = logging.getLogger('tubetunes')
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers
    logger.handlers.clear()
    logger.propagate = False

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
        console_formatter = ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module.

    Args:
        name: Module name

    Returns:
        Logger instance
    """
    return logging.getLogger(f'tubetunes.{name}')


# Custom exceptions for better error handling
class TubeTunesError(Exception):
    """Base exception for tubetunes."""
    pass


class PlayerSessionError(TubeTunesError):
    """Player process or control socket errors."""
    pass


class StorageError(TubeTunesError):
    """Playlist file read/write errors."""
    pass


class ConfigurationError(TubeTunesError):
    """Configuration related errors."""
    pass


class SearchError(TubeTunesError):
    """Search functionality errors."""
    pass


class InvalidInputError(TubeTunesError):
    """A user request that was rejected before touching any state."""
    pass


class DuplicateNameError(InvalidInputError):
    """A playlist with the same (case-insensitive) name already exists."""
    pass


class DuplicateTrackError(InvalidInputError):
    """The playlist already holds a track with this identifier."""
    pass


class InvalidSelectionError(InvalidInputError):
    """Selection index or playlist key does not exist."""
    pass


class PlaylistLimitError(InvalidInputError):
    """Playlist count or playlist size limit reached."""
    pass
