"""
Configuration management for taskkeeper.

Loads settings from config.ini with environment variable overrides.
Provides the database location and logging options for host applications
and the command-line entry point.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional

from taskkeeper.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path.home() / ".taskkeeper" / "tasks.db"


class Config:
    """Application configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file, defaults to ~/.taskkeeper/config.ini
        """
        self.config_path = config_path or self._default_config_path()
        self._config = configparser.ConfigParser()
        self._load()

    def _default_config_path(self) -> Path:
        """Get default config path."""
        return Path.home() / ".taskkeeper" / "config.ini"

    def _load(self):
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                self._config.read(self.config_path)
                logger.info(f"Loaded configuration from {self.config_path}")
            except configparser.Error as e:
                logger.warning(f"Failed to read config file: {e}. Using defaults.")
        else:
            logger.debug(f"Config file not found at {self.config_path}. Using defaults.")

    def get_storage_config(self) -> Dict[str, Any]:
        """
        Get storage configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKKEEPER_DB_PATH

        Returns:
            Dictionary with storage configuration
        """
        raw_path = (
            os.getenv('TASKKEEPER_DB_PATH') or
            self._config.get('storage', 'db_path', fallback=str(DEFAULT_DB_PATH))
        )
        config = {
            'db_path': Path(raw_path).expanduser(),
        }

        logger.debug(f"Storage config: db_path={config['db_path']}")

        return config

    def get_logging_config(self) -> Dict[str, Any]:
        """
        Get logging configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKKEEPER_LOG_LEVEL
        - TASKKEEPER_LOG_CONSOLE

        Returns:
            Dictionary with logging configuration
        """
        console_env = os.getenv('TASKKEEPER_LOG_CONSOLE', '').lower()
        console = (
            console_env == 'true'
            if console_env
            else self._config.getboolean('logging', 'console', fallback=False)
        )

        config = {
            'level': (os.getenv('TASKKEEPER_LOG_LEVEL') or
                      self._config.get('logging', 'level', fallback='INFO')).upper(),
            'console': console,
        }

        logger.debug(f"Logging config: level={config['level']}, console={config['console']}")

        return config
