"""In-process event bus connecting bridge components to the channel layer."""

from typing import Any, Callable, Dict, List
from bridge.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - OS-facing components (RemoteCommandRouter, LocalCapabilityProbe) publish events
    - NativeBridge subscribes and forwards them to the application layer's channels
    """

    # =========================================================================
    # OS -> application layer
    # =========================================================================

    # Transport/like gesture: {"type": "play"|"pause"|"next"|"prev"|"toggleLike", ...}
    REMOTE_COMMAND = "remote.command"
    # Probe outcome changed: {"status": "unknown"|"granted"|"denied"}
    LOCAL_NETWORK_PERMISSION_CHANGED = "permissions.local_network_changed"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
