"""Platform capability flags, resolved once at start-up."""

import shutil
from pathlib import Path

from bridge.config import Config
from bridge.logging import get_logger

logger = get_logger(__name__)

AVAHI_RUNTIME_DIR = Path('/run/avahi-daemon')


class PlatformCapabilities:
    """What the host platform offers.

    Components branch on these flags instead of probing the platform
    themselves.
    """

    def __init__(self, service_discovery: bool = True, tab_bar: bool = True):
        self.service_discovery = service_discovery
        self.tab_bar = tab_bar

    @classmethod
    def detect(cls, config: Config) -> 'PlatformCapabilities':
        service_discovery = (
            AVAHI_RUNTIME_DIR.exists() or shutil.which('avahi-daemon') is not None
        )
        capabilities = cls(
            service_discovery=service_discovery,
            tab_bar=config.tab_bar_enabled,
        )
        logger.info("Platform capabilities: service_discovery=%s tab_bar=%s",
                    capabilities.service_discovery, capabilities.tab_bar)
        return capabilities

    def __repr__(self) -> str:
        return (f"PlatformCapabilities(service_discovery={self.service_discovery}, "
                f"tab_bar={self.tab_bar})")
