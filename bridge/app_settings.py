"""Opening the bridge's settings for the user."""

import shutil
import subprocess
from pathlib import Path

from bridge.logging import get_logger

logger = get_logger(__name__)


class AppSettingsOpener:
    """Opens the config file in the desktop's default handler."""

    def __init__(self, main_context, target: Path, launcher: str = "xdg-open"):
        self._main = main_context
        self.target = target
        self.launcher = launcher

    def open(self) -> bool:
        """Open settings on the main loop; blocks callers on other threads for the result."""
        return self._main.run_sync(self._open)

    def _open(self) -> bool:
        launcher_path = shutil.which(self.launcher)
        if launcher_path is None:
            logger.warning("%s not found; cannot open settings", self.launcher)
            return False
        try:
            subprocess.Popen(
                [launcher_path, str(self.target)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error("Failed to open settings: %s", e, exc_info=True)
            return False
        return True
