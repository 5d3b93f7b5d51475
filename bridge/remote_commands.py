"""Transport-control commands from the OS surface to the application layer."""

from enum import Enum
from typing import Any, Callable, Dict, List

from bridge.events import EventBus
from bridge.logging import get_logger

logger = get_logger(__name__)


class TransportCommand(Enum):
    """Commands the OS transport-control surface can fire."""

    PLAY = "play"
    PAUSE = "pause"
    TOGGLE_PLAY_PAUSE = "togglePlayPause"
    NEXT_TRACK = "nextTrack"
    PREVIOUS_TRACK = "previousTrack"
    CHANGE_PLAYBACK_POSITION = "changePlaybackPosition"


class CommandStatus(Enum):
    SUCCESS = "success"
    COMMAND_FAILED = "commandFailed"


class CommandCenter:
    """Process-wide registry of handlers for OS transport commands.

    The MPRIS2 player dispatches into this; tests dispatch directly.
    """

    def __init__(self):
        self._handlers: Dict[TransportCommand, List[Callable[[], CommandStatus]]] = {}
        self._enabled: Dict[TransportCommand, bool] = {}
        self.receiving = False

    def begin_receiving(self) -> None:
        self.receiving = True

    def set_enabled(self, command: TransportCommand, enabled: bool) -> None:
        self._enabled[command] = enabled

    def is_enabled(self, command: TransportCommand) -> bool:
        return self._enabled.get(command, False)

    def add_handler(self, command: TransportCommand, handler: Callable[[], CommandStatus]) -> None:
        self._handlers.setdefault(command, []).append(handler)

    def remove_handlers(self, command: TransportCommand) -> None:
        self._handlers.pop(command, None)

    def handler_count(self, command: TransportCommand) -> int:
        return len(self._handlers.get(command, []))

    def dispatch(self, command: TransportCommand) -> CommandStatus:
        """Fire ``command``; the last handler's status is returned."""
        handlers = self._handlers.get(command)
        if not handlers:
            logger.debug("No handler for %s", command.value)
            return CommandStatus.COMMAND_FAILED
        status = CommandStatus.COMMAND_FAILED
        for handler in list(handlers):
            status = handler()
        if not self.is_enabled(command) and status is CommandStatus.SUCCESS:
            # Disabled commands never report success
            status = CommandStatus.COMMAND_FAILED
        return status


class RemoteCommandRouter:
    """Registers transport intents and forwards them as application commands."""

    def __init__(self, command_center: CommandCenter, event_bus: EventBus,
                 is_playing: Callable[[], bool]):
        """
        Args:
            command_center: OS command surface
            event_bus: Bus the outbound ``remote.command`` events go to
            is_playing: Returns the last known playing flag
        """
        self.command_center = command_center
        self.event_bus = event_bus
        self._is_playing = is_playing
        self._configured = False

    @property
    def configured(self) -> bool:
        return self._configured

    def configure(self) -> None:
        """Register the transport intents once per process."""
        if self._configured:
            return
        center = self.command_center
        center.begin_receiving()
        for command in (TransportCommand.PLAY, TransportCommand.PAUSE,
                        TransportCommand.TOGGLE_PLAY_PAUSE, TransportCommand.NEXT_TRACK,
                        TransportCommand.PREVIOUS_TRACK):
            center.set_enabled(command, True)
        # Scrubbing from the OS chrome is unsupported
        center.set_enabled(TransportCommand.CHANGE_PLAYBACK_POSITION, False)
        center.remove_handlers(TransportCommand.CHANGE_PLAYBACK_POSITION)

        center.add_handler(TransportCommand.PLAY, lambda: self._forward("play"))
        center.add_handler(TransportCommand.PAUSE, lambda: self._forward("pause"))
        center.add_handler(TransportCommand.TOGGLE_PLAY_PAUSE, self._on_toggle_play_pause)
        center.add_handler(TransportCommand.NEXT_TRACK, lambda: self._forward("next"))
        center.add_handler(TransportCommand.PREVIOUS_TRACK, lambda: self._forward("prev"))
        center.add_handler(TransportCommand.CHANGE_PLAYBACK_POSITION,
                           lambda: CommandStatus.COMMAND_FAILED)
        self._configured = True
        logger.info("Remote commands registered")

    def _on_toggle_play_pause(self) -> CommandStatus:
        return self._forward("pause" if self._is_playing() else "play")

    def _forward(self, command_type: str, **extra: Any) -> CommandStatus:
        self.send(command_type, **extra)
        return CommandStatus.SUCCESS

    def send(self, command_type: str, **extra: Any) -> None:
        """Emit an outbound command; does not wait for the application layer."""
        payload = dict(extra)
        payload['type'] = command_type
        logger.debug("Remote command %s", command_type)
        self.event_bus.publish(EventBus.REMOTE_COMMAND, payload)

    def toggle_like(self) -> None:
        self.send("toggleLike")
