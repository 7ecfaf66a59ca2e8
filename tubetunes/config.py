"""
Configuration management for tubetunes.
"""
import json
import os
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from tubetunes.logging_config import get_logger

logger = get_logger('config')

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Settings that may be null in the file
OPTIONAL_FIELDS = {'log_file'}


def _get_config_dir() -> Path:
    """Get the configuration directory following XDG spec.

    Returns:
        Path to the config directory (~/.config/tubetunes by default)
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "tubetunes"
    return Path.home() / ".config" / "tubetunes"


@dataclass
class AppConfig:
    """Application configuration settings."""

    # Playlist storage (index file plus one file per playlist)
    data_directory: str = str(_get_config_dir())

    # Player settings
    socket_path: str = "/tmp/tubetunes_mpv.sock"
    mpv_binary: str = "mpv"
    start_timeout: float = 5.0
    grace_period: float = 3.0

    # Search settings
    search_limit: int = 50

    # UI settings
    input_timeout: float = 0.1

    # Logging settings
    log_level: str = "INFO"
    log_file: Optional[str] = str(_get_config_dir() / "tubetunes.log")


class ConfigManager:
    """Loads, creates and validates the configuration file."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.config: AppConfig = AppConfig()
        self._load_config()

    def _get_default_config_path(self) -> Path:
        """Get default configuration file path."""
        return _get_config_dir() / "config.json"

    def _load_config(self) -> None:
        """Load configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            self._create_default_config()
            return

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
            if isinstance(data, dict):
                self._apply_config_data(data)
                logger.info(f"Loaded configuration from {self.config_path}")
            else:
                logger.error(f"Config file {self.config_path} is not a JSON object")
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to load config: {e}")
            logger.info("Using default configuration")

    def _create_default_config(self) -> None:
        """Create a default configuration file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, 'w') as f:
                json.dump(asdict(self.config), f, indent=2)

            logger.info(f"Created default config at {self.config_path}")
        except IOError as e:
            logger.warning(f"Failed to create default config: {e}")

    def _apply_config_data(self, data: Dict[str, Any]) -> None:
        """Apply configuration data to AppConfig object."""
        defaults = AppConfig()
        for key, value in data.items():
            if not hasattr(self.config, key):
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            default = getattr(defaults, key)
            if value is None and key not in OPTIONAL_FIELDS:
                logger.warning(f"Config value for {key} must not be null")
                continue
            # Accept ints where floats are expected, reject other type changes
            if value is not None:
                if isinstance(default, float) and isinstance(value, int) and not isinstance(value, bool):
                    value = float(value)
                elif type(value) is not type(default):
                    logger.warning(f"Invalid config value for {key}: {value!r}")
                    continue
            setattr(self.config, key, value)

    def _find_issues(self) -> Dict[str, str]:
        """Map each out-of-range setting to a description of the problem."""
        config = self.config
        issues: Dict[str, str] = {}

        if not (1 <= config.search_limit <= 50):
            issues['search_limit'] = f"Search limit must be 1-50, got {config.search_limit}"

        if not (0.01 <= config.input_timeout <= 1.0):
            issues['input_timeout'] = f"Input timeout must be 0.01-1.0, got {config.input_timeout}"

        if config.grace_period < 0:
            issues['grace_period'] = f"Grace period must not be negative, got {config.grace_period}"

        if config.start_timeout <= 0:
            issues['start_timeout'] = f"Start timeout must be positive, got {config.start_timeout}"

        for key in ('socket_path', 'mpv_binary', 'data_directory'):
            if not getattr(config, key):
                issues[key] = f"{key} must not be empty"

        if config.log_level.upper() not in VALID_LOG_LEVELS:
            issues['log_level'] = f"Invalid log level: {config.log_level}"

        return issues

    def validate_config(self, repair: bool = False) -> bool:
        """Validate current configuration.

        Args:
            repair: Put every invalid setting back to its default

        Returns:
            True if every setting was valid
        """
        issues = self._find_issues()
        if not issues:
            return True

        logger.warning(f"Configuration validation issues: {list(issues.values())}")
        if repair:
            defaults = AppConfig()
            for key in issues:
                setattr(self.config, key, getattr(defaults, key))
                logger.warning(f"Using default for {key}: {getattr(defaults, key)!r}")
        return False

    def get_data_directory_path(self) -> Path:
        """Get the actual path to the playlist data directory."""
        return Path(self.config.data_directory).expanduser()

    def get_log_file_path(self) -> Optional[Path]:
        if not self.config.log_file:
            return None
        return Path(self.config.log_file).expanduser()


def load_config(config_path: Optional[Path] = None) -> ConfigManager:
    """Load configuration and return manager."""
    return ConfigManager(config_path)
