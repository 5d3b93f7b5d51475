"""Linux-native logging for the bridge process.

This module provides structured logging that writes to a rotating file in the
XDG data directory and echoes warnings to stderr.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
# None

ROOT_LOGGER_NAME = "phonolite"


class BridgeLogger:
    """
    Bridge logger with file and console output.

    Supports:
    - File logging to XDG data directory
    - Console output for warnings and errors
    - Environment variable control (PHONOLITE_DEBUG)
    """

    _instance: Optional["BridgeLogger"] = None
    _initialized: bool = False

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files (defaults to XDG data dir)
        """
        if BridgeLogger._initialized:
            return

        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.logger.setLevel(
            logging.DEBUG if os.getenv("PHONOLITE_DEBUG") else logging.INFO
        )

        # Prevent duplicate handlers
        if self.logger.handlers:
            return

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir is None:
            xdg_data = os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")
            log_dir = Path(xdg_data) / ROOT_LOGGER_NAME / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / "phonolite.log", maxBytes=10 * 1024 * 1024, backupCount=5  # 10MB
            )
        except OSError as e:
            # Read-only home (sandboxed head units); keep console output only
            self.logger.warning("File logging disabled: %s", e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        BridgeLogger._initialized = True

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger instance.

        Args:
            name: Logger name (creates child logger)

        Returns:
            Logger instance
        """
        if cls._instance is None:
            cls._instance = cls()

        if name == ROOT_LOGGER_NAME:
            return cls._instance.logger
        return cls._instance.logger.getChild(name)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return BridgeLogger.get_logger(name)
