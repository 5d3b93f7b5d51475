"""Configuration management using XDG Base Directory Specification.

This module provides centralized configuration for the bridge process
following Linux standards for config, cache, and data directories.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from bridge.exceptions import ConfigurationError


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/phonolite/ (or XDG_CONFIG_HOME)
    - Cache: ~/.cache/phonolite/ (or XDG_CACHE_HOME)
    - Data: ~/.local/share/phonolite/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        if Config._instance is not None:
            return

        # XDG Base Directory paths
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.cache_home = Path(os.getenv('XDG_CACHE_HOME', Path.home() / '.cache'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = 'phonolite'
        self.config_dir = self.config_home / self.app_name
        self.cache_dir = self.cache_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()

        self._load_config()

        Config._instance = self

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        self._apply_defaults()
        if self.config_file.exists():
            try:
                self.config.read(self.config_file)
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}") from e
        else:
            self.save()

    def _apply_defaults(self) -> None:
        """Populate every section with its defaults; values on disk override them."""
        self.config['now_playing'] = {
            'seek_backward_tolerance': '0.75',
            'placeholder_title': 'Now Playing',
        }

        self.config['artwork'] = {
            'request_timeout': '10',
        }

        self.config['head_unit'] = {
            'now_playing_refresh_delay': '0.25',
            'enabled': 'false',
            'tab_bar': 'true',
        }

        self.config['local_network'] = {
            'probe_on_startup': 'true',
            'probe_timeout': '2.0',
            'service_name': 'Phonolite',
            'service_type': '_phonolite._tcp',
        }

        self.config['channels'] = {
            'reply_timeout': '30',
        }

    def save(self) -> None:
        """
        Save configuration to file.

        Writes current configuration state to the config file.
        """
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from bridge.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, value)
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        return self.config.getboolean(section, key, fallback=fallback)

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key} must be a number") from e

    # Convenience properties
    @property
    def seek_backward_tolerance(self) -> float:
        """Backward distance (seconds) under which a position report is jitter."""
        return self.get_float('now_playing', 'seek_backward_tolerance', 0.75)

    @property
    def placeholder_title(self) -> str:
        return self.get('now_playing', 'placeholder_title', 'Now Playing')

    @property
    def artwork_request_timeout(self) -> float:
        return self.get_float('artwork', 'request_timeout', 10.0)

    @property
    def now_playing_refresh_delay(self) -> float:
        return self.get_float('head_unit', 'now_playing_refresh_delay', 0.25)

    @property
    def head_unit_enabled(self) -> bool:
        return self.get_bool('head_unit', 'enabled', False)

    @property
    def tab_bar_enabled(self) -> bool:
        return self.get_bool('head_unit', 'tab_bar', True)

    @property
    def probe_on_startup(self) -> bool:
        return self.get_bool('local_network', 'probe_on_startup', True)

    @property
    def probe_timeout(self) -> float:
        return self.get_float('local_network', 'probe_timeout', 2.0)

    @property
    def service_name(self) -> str:
        return self.get('local_network', 'service_name', 'Phonolite')

    @property
    def service_type(self) -> str:
        return self.get('local_network', 'service_type', '_phonolite._tcp')

    @property
    def reply_timeout(self) -> float:
        return self.get_float('channels', 'reply_timeout', 30.0)

    @property
    def artwork_cache_dir(self) -> Path:
        """Directory where the lock-screen artwork is exported for MPRIS clients."""
        art_dir = self.cache_dir / 'art'
        art_dir.mkdir(parents=True, exist_ok=True)
        return art_dir

    @property
    def state_file(self) -> Path:
        """Persisted bridge state (outlives restarts)."""
        return self.data_dir / 'state.ini'

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir


def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
