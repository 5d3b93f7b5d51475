"""Composition root: builds every bridge component and wires it to the channels.

Inbound calls from the application layer arrive on the three method channels
and are routed to the projector, the active head-unit scene, or the probe.
Outbound traffic (transport commands, permission changes) is published on the
event bus by the OS-facing components and forwarded here.
"""

from typing import Any, Dict, Optional

import requests

from bridge.artwork import ArtworkCache
from bridge.app_settings import AppSettingsOpener
from bridge.capabilities import PlatformCapabilities
from bridge.channels import (
    HEAD_UNIT_CHANNEL,
    NOT_IMPLEMENTED,
    NOW_PLAYING_CHANNEL,
    PERMISSIONS_CHANNEL,
    MethodChannel,
    parse_bool,
    require_mapping,
)
from bridge.config import Config
from bridge.events import EventBus
from bridge.local_network import AvahiServiceListener, LocalCapabilityProbe
from bridge.logging import get_logger
from bridge.navigation import NavigationStateMachine
from bridge.now_playing import NowPlayingProjector, SnapshotDelta
from bridge.position import PositionTracker
from bridge.preferences import Preferences
from bridge.remote_commands import CommandCenter, RemoteCommandRouter
from bridge.scenes import SceneRegistry

logger = get_logger(__name__)


class NativeBridge:
    """Owns the process-wide bridge objects."""

    def __init__(self, config: Config, main_context, runner, widget,
                 command_center: CommandCenter,
                 event_bus: Optional[EventBus] = None,
                 preferences: Optional[Preferences] = None,
                 capabilities: Optional[PlatformCapabilities] = None,
                 listener_factory=None,
                 settings_opener: Optional[AppSettingsOpener] = None,
                 session: Optional[requests.Session] = None):
        """
        Args:
            config: Loaded configuration
            main_context: UI-affinity context
            runner: Background runner for network work
            widget: Lock-screen widget port
            command_center: OS transport-command surface
            event_bus: In-process bus (a new one by default)
            preferences: Persisted state store (``config.state_file`` by default)
            capabilities: Platform flags (all available by default)
            listener_factory: ``factory(on_ready, on_failed)`` for the probe;
                an Avahi listener by default
            settings_opener: Opens the settings file
            session: HTTP session for artwork
        """
        self.config = config
        self.main = main_context
        self.runner = runner
        self.event_bus = event_bus or EventBus()
        self.capabilities = capabilities or PlatformCapabilities()
        self.preferences = preferences or Preferences(config.state_file)

        self.now_playing_channel = MethodChannel(NOW_PLAYING_CHANNEL)
        self.head_unit_channel = MethodChannel(HEAD_UNIT_CHANNEL)
        self.permissions_channel = MethodChannel(PERMISSIONS_CHANNEL)

        self.scenes = SceneRegistry()
        self.artwork = ArtworkCache(main_context, runner, session=session,
                                    timeout=config.artwork_request_timeout)
        self.projector = NowPlayingProjector(
            widget, main_context, self.artwork, self.scenes,
            tracker=PositionTracker(config.seek_backward_tolerance),
            placeholder_title=config.placeholder_title,
        )
        self.router = RemoteCommandRouter(command_center, self.event_bus,
                                          lambda: self.projector.is_playing)

        if listener_factory is None:
            def listener_factory(on_ready, on_failed):
                return AvahiServiceListener(config.service_name, config.service_type,
                                            on_ready, on_failed)
        self.probe = LocalCapabilityProbe(
            self.preferences, self.event_bus, main_context, listener_factory,
            timeout=config.probe_timeout,
            supported=self.capabilities.service_discovery,
        )
        self.settings_opener = settings_opener or AppSettingsOpener(main_context,
                                                                    config.config_file)

        self.now_playing_channel.set_method_call_handler(self._handle_now_playing)
        self.head_unit_channel.set_method_call_handler(self._handle_head_unit)
        self.permissions_channel.set_method_call_handler(self._handle_permissions)

        self.event_bus.subscribe(EventBus.REMOTE_COMMAND, self._forward_remote_command)
        self.event_bus.subscribe(EventBus.LOCAL_NETWORK_PERMISSION_CHANGED,
                                 self._forward_permission)

    @property
    def channels(self) -> Dict[str, MethodChannel]:
        return {
            NOW_PLAYING_CHANNEL: self.now_playing_channel,
            HEAD_UNIT_CHANNEL: self.head_unit_channel,
            PERMISSIONS_CHANNEL: self.permissions_channel,
        }

    def start(self) -> None:
        self.router.configure()
        if self.config.probe_on_startup:
            self.probe.request_permission()
        logger.info("Bridge started")

    def shutdown(self) -> None:
        self.probe.stop()
        self.event_bus.unsubscribe(EventBus.REMOTE_COMMAND, self._forward_remote_command)
        self.event_bus.unsubscribe(EventBus.LOCAL_NETWORK_PERMISSION_CHANGED,
                                   self._forward_permission)
        for channel in self.channels.values():
            channel.set_method_call_handler(None)
        logger.info("Bridge stopped")

    def create_head_unit_scene(self, scene_id: str = "head-unit") -> NavigationStateMachine:
        """New scene wired to this bridge; the caller connects it to its interface."""
        return NavigationStateMachine(
            self.head_unit_channel, self.main, self.artwork, self.scenes,
            on_refresh_now_playing=lambda force: self.projector.refresh_for_head_unit(force),
            on_toggle_like=self.router.toggle_like,
            capabilities=self.capabilities,
            scene_id=scene_id,
            refresh_delay=self.config.now_playing_refresh_delay,
        )

    def show_now_playing(self) -> None:
        """Bring the active head-unit scene to its now-playing view (external wake)."""
        def show():
            scene = self.scenes.active()
            if scene is None:
                logger.debug("Now-playing wake with no head-unit scene connected")
                return
            scene.show_now_playing()
        self.main.invoke(show)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _handle_now_playing(self, method: str, arguments: Any) -> Any:
        if method == 'setNowPlaying':
            self.projector.ingest(SnapshotDelta.from_arguments(arguments))
            return True
        if method == 'clearNowPlaying':
            self.projector.clear()
            return True
        return NOT_IMPLEMENTED

    def _handle_head_unit(self, method: str, arguments: Any) -> Any:
        if method == 'authState':
            args = require_mapping(arguments, method)
            authorized = parse_bool(args.get('authorized')) is True
            scene = self.scenes.active()
            if scene is None:
                logger.debug("authState with no head-unit scene connected")
            else:
                scene.update_auth_state(authorized)
            return True
        return NOT_IMPLEMENTED

    def _handle_permissions(self, method: str, arguments: Any) -> Any:
        if method == 'getLocalNetworkPermission':
            return self.probe.status.value
        if method == 'refreshLocalNetworkPermission':
            self.main.invoke(self.probe.request_permission)
            return True
        if method == 'openAppSettings':
            return self.settings_opener.open()
        return NOT_IMPLEMENTED

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _forward_remote_command(self, payload: Dict[str, Any]) -> None:
        self.now_playing_channel.invoke_method('remoteCommand', payload)

    def _forward_permission(self, payload: Dict[str, Any]) -> None:
        self.permissions_channel.invoke_method('localNetworkPermission', payload)
