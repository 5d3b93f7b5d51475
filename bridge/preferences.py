"""Small persistent key/value store for bridge state that must survive restarts."""

import configparser
from pathlib import Path
from typing import Optional

from bridge.logging import get_logger

logger = get_logger(__name__)

SECTION = 'state'


class Preferences:
    """String values kept in an INI file under the XDG data directory."""

    def __init__(self, path: Path):
        self.path = path
        self._parser = configparser.ConfigParser()
        if self.path.exists():
            try:
                self._parser.read(self.path)
            except configparser.Error as e:
                logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
                self._parser = configparser.ConfigParser()
        if not self._parser.has_section(SECTION):
            self._parser.add_section(SECTION)

    def get_string(self, key: str) -> Optional[str]:
        return self._parser.get(SECTION, key, fallback=None)

    def set_string(self, key: str, value: str) -> None:
        self._parser.set(SECTION, key, value)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                self._parser.write(f)
        except OSError as e:
            logger.error("Failed to persist %s: %s", key, e, exc_info=True)
