"""MPRIS2 (Media Player Remote Interfacing Specification) D-Bus interface.

This is the desktop "Now Playing" surface of the bridge:
- the Player interface shows the projected now-playing info (lock screens,
  shell media widgets, head-unit Bluetooth/AVRCP relays read it)
- transport methods (PlayPause, Next, Previous, ...) fire the bridge's
  CommandCenter; seeking is not offered and always fails
"""

import hashlib
import dbus
import dbus.service
from dbus.mainloop.glib import DBusGMainLoop
from pathlib import Path
from typing import Optional, Dict, Any, List

from bridge.dbus_utils import dbus_error_name
from bridge.logging import get_logger
from bridge.now_playing import PlaybackState, ProjectedInfo
from bridge.remote_commands import CommandCenter, CommandStatus, TransportCommand

logger = get_logger(__name__)


# MPRIS2 interfaces
MPRIS2_BUS_NAME = 'org.mpris.MediaPlayer2.phonolite'
MPRIS2_OBJECT_PATH = '/org/mpris/MediaPlayer2'
MPRIS2_ROOT_INTERFACE = 'org.mpris.MediaPlayer2'
MPRIS2_PLAYER_INTERFACE = 'org.mpris.MediaPlayer2.Player'
PROPERTIES_INTERFACE = 'org.freedesktop.DBus.Properties'
NO_TRACK_PATH = '/org/mpris/MediaPlayer2/TrackList/NoTrack'

PLAYBACK_STATUS = {
    PlaybackState.PLAYING: 'Playing',
    PlaybackState.PAUSED: 'Paused',
    PlaybackState.STOPPED: 'Stopped',
}


def track_path_component(track_id: str) -> str:
    """Stable object-path element for ``track_id`` (paths only allow [A-Za-z0-9_])."""
    return 't' + hashlib.sha1(track_id.encode('utf-8')).hexdigest()


class MPRIS2Root(dbus.service.Object):
    """MPRIS2 root interface (org.mpris.MediaPlayer2) plus org.freedesktop.DBus.Properties."""

    def __init__(self, bus, object_path):
        super().__init__(bus, object_path)
        self._identity = "Phonolite"
        self.on_raise = None

    @dbus.service.method(MPRIS2_ROOT_INTERFACE, in_signature='', out_signature='')
    def Quit(self):
        """The bridge lives as long as the application; quitting is refused."""
        logger.debug("MPRIS2: Quit requested (ignored)")

    @dbus.service.method(MPRIS2_ROOT_INTERFACE, in_signature='', out_signature='')
    def Raise(self):
        logger.debug("MPRIS2: Raise requested")
        if self.on_raise:
            self.on_raise()

    def _properties(self, interface: str) -> Dict[str, Any]:
        if interface == MPRIS2_ROOT_INTERFACE:
            return {
                'CanQuit': False,
                'CanRaise': self.on_raise is not None,
                'HasTrackList': False,
                'Identity': self._identity,
                'SupportedUriSchemes': dbus.Array([], signature='s'),
                'SupportedMimeTypes': dbus.Array([], signature='s'),
            }
        return {}

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='ss', out_signature='v')
    def Get(self, interface, prop):
        properties = self._properties(str(interface))
        if str(prop) not in properties:
            raise dbus.exceptions.DBusException(
                f"No property {prop} on {interface}",
                name='org.freedesktop.DBus.Error.UnknownProperty')
        return properties[str(prop)]

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='s', out_signature='a{sv}')
    def GetAll(self, interface):
        return dbus.Dictionary(self._properties(str(interface)), signature='sv')

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='ssv', out_signature='')
    def Set(self, interface, prop, value):
        raise dbus.exceptions.DBusException(
            f"{prop} is read-only", name='org.freedesktop.DBus.Error.PropertyReadOnly')

    @dbus.service.signal(PROPERTIES_INTERFACE, signature='sa{sv}as')
    def PropertiesChanged(self, interface: str, changed: Dict[str, Any], invalidated: List[str]):
        pass


class MPRIS2Player(MPRIS2Root):
    """MPRIS2 Player interface (org.mpris.MediaPlayer2.Player), exported with the root one."""

    def __init__(self, bus, object_path, command_center: CommandCenter):
        super().__init__(bus, object_path)
        self.command_center = command_center
        self._playback_status = 'Stopped'
        self._rate = 0.0
        self._metadata: Dict[str, Any] = {}
        self._position = 0.0

    def _fire(self, command: TransportCommand) -> CommandStatus:
        status = self.command_center.dispatch(command)
        if status is CommandStatus.COMMAND_FAILED:
            logger.info("MPRIS2: %s failed", command.value)
        return status

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Next(self):
        logger.info("MPRIS2: Next requested")
        self._fire(TransportCommand.NEXT_TRACK)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Previous(self):
        logger.info("MPRIS2: Previous requested")
        self._fire(TransportCommand.PREVIOUS_TRACK)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Pause(self):
        logger.info("MPRIS2: Pause requested")
        self._fire(TransportCommand.PAUSE)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def PlayPause(self):
        logger.info("MPRIS2: PlayPause requested")
        self._fire(TransportCommand.TOGGLE_PLAY_PAUSE)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Stop(self):
        logger.info("MPRIS2: Stop requested")
        self._fire(TransportCommand.PAUSE)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Play(self):
        logger.info("MPRIS2: Play requested")
        self._fire(TransportCommand.PLAY)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='x', out_signature='')
    def Seek(self, offset: int):
        logger.debug("MPRIS2: Seek requested: %d microseconds", offset)
        self._fire(TransportCommand.CHANGE_PLAYBACK_POSITION)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='ox', out_signature='')
    def SetPosition(self, track_id: str, position: int):
        logger.debug("MPRIS2: SetPosition requested: track_id=%s, position=%d", track_id, position)
        self._fire(TransportCommand.CHANGE_PLAYBACK_POSITION)

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='s', out_signature='')
    def OpenUri(self, uri: str):
        logger.debug("MPRIS2: OpenUri not supported: %s", uri)

    @dbus.service.signal(MPRIS2_PLAYER_INTERFACE, signature='x')
    def Seeked(self, position: int):
        """Signal emitted when the published position jumps."""
        pass

    def _properties(self, interface: str) -> Dict[str, Any]:
        if interface != MPRIS2_PLAYER_INTERFACE:
            return super()._properties(interface)
        center = self.command_center
        return {
            'PlaybackStatus': self._playback_status,
            'Rate': dbus.Double(self._rate),
            'Metadata': dbus.Dictionary(self._metadata, signature='sv'),
            # Microseconds
            'Position': dbus.Int64(int(self._position * 1_000_000)),
            'MinimumRate': dbus.Double(1.0),
            'MaximumRate': dbus.Double(1.0),
            'CanGoNext': center.is_enabled(TransportCommand.NEXT_TRACK),
            'CanGoPrevious': center.is_enabled(TransportCommand.PREVIOUS_TRACK),
            'CanPlay': center.is_enabled(TransportCommand.PLAY),
            'CanPause': center.is_enabled(TransportCommand.PAUSE),
            'CanSeek': center.is_enabled(TransportCommand.CHANGE_PLAYBACK_POSITION),
            'CanControl': True,
        }

    def set_playback_status(self, status: str) -> None:
        if self._playback_status != status:
            self._playback_status = status
            self.PropertiesChanged(MPRIS2_PLAYER_INTERFACE, {'PlaybackStatus': status}, [])

    def set_projection(self, metadata: Dict[str, Any], rate: float, position: float) -> None:
        changed: Dict[str, Any] = {}
        if metadata != self._metadata:
            self._metadata = metadata
            changed['Metadata'] = dbus.Dictionary(metadata, signature='sv')
        if rate != self._rate:
            self._rate = rate
            changed['Rate'] = dbus.Double(rate)
        jumped = abs(position - self._position) > 1.5
        self._position = position
        if changed:
            self.PropertiesChanged(MPRIS2_PLAYER_INTERFACE, changed, [])
        if jumped:
            self.Seeked(dbus.Int64(int(position * 1_000_000)))


class MPRIS2Manager:
    """Owns the MPRIS2 bus name and acts as the bridge's now-playing widget."""

    def __init__(self, command_center: CommandCenter, artwork_dir: Path, bus=None):
        """
        Args:
            command_center: Where transport methods are dispatched
            artwork_dir: Directory the current artwork is exported to for artUrl
            bus: Session bus (created with the GLib main loop by default)
        """
        if bus is None:
            DBusGMainLoop(set_as_default=True)
            bus = dbus.SessionBus()
        self.bus = bus
        self.command_center = command_center
        self.artwork_dir = artwork_dir
        self.player: Optional[MPRIS2Player] = None
        self._name_id: Optional[int] = None
        self._exported_artwork = None
        self._artwork_path: Optional[Path] = None
        self._artwork_serial = 0

        try:
            self._name_id = self.bus.request_name(
                MPRIS2_BUS_NAME,
                dbus.bus.NAME_FLAG_REPLACE_EXISTING
            )
            if self._name_id == dbus.bus.REQUEST_NAME_REPLY_PRIMARY_OWNER:
                logger.info("MPRIS2: Acquired bus name %s", MPRIS2_BUS_NAME)
                self.player = MPRIS2Player(self.bus, MPRIS2_OBJECT_PATH, command_center)
            else:
                logger.warning("MPRIS2: Could not acquire bus name (may already be in use)")
        except dbus.exceptions.DBusException as e:
            logger.error("MPRIS2: Failed to register: %s", dbus_error_name(e))

    def set_now_playing_info(self, info: Optional[ProjectedInfo]) -> None:
        if not self.player:
            return
        if info is None:
            self._export_artwork(None)
            self.player.set_projection({}, 0.0, 0.0)
            return
        self.player.set_projection(self._build_metadata(info), info.playback_rate, info.elapsed)

    def set_raise_handler(self, handler) -> None:
        """Route the root interface's Raise to ``handler``; also advertises CanRaise."""
        if not self.player:
            return
        self.player.on_raise = handler
        self.player.PropertiesChanged(MPRIS2_ROOT_INTERFACE,
                                      {'CanRaise': handler is not None}, [])

    def set_playback_state(self, state: PlaybackState) -> None:
        if self.player:
            self.player.set_playback_status(PLAYBACK_STATUS[state])

    def _build_metadata(self, info: ProjectedInfo) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        if info.track_id:
            metadata['mpris:trackid'] = dbus.ObjectPath(
                f"/org/phonolite/Track/{track_path_component(info.track_id)}")
        else:
            metadata['mpris:trackid'] = dbus.ObjectPath(NO_TRACK_PATH)
        if info.title is not None:
            metadata['xesam:title'] = info.title
        if info.artist:
            metadata['xesam:artist'] = dbus.Array([info.artist], signature='s')
        if info.album:
            metadata['xesam:album'] = info.album
        if info.duration:
            metadata['mpris:length'] = dbus.Int64(int(info.duration * 1_000_000))
        art_path = self._export_artwork(info.artwork)
        if art_path is not None:
            metadata['mpris:artUrl'] = art_path.resolve().as_uri()
        return metadata

    def _export_artwork(self, image) -> Optional[Path]:
        """Write ``image`` to disk once per image; a new name per image so clients reload."""
        if image is self._exported_artwork:
            return self._artwork_path
        if self._artwork_path is not None:
            self._artwork_path.unlink(missing_ok=True)
            self._artwork_path = None
        self._exported_artwork = image
        if image is None:
            return None
        self._artwork_serial += 1
        path = self.artwork_dir / f"artwork-{self._artwork_serial}.png"
        try:
            self.artwork_dir.mkdir(parents=True, exist_ok=True)
            image.save(path, format='PNG')
        except (OSError, ValueError) as e:
            logger.warning("MPRIS2: Could not export artwork: %s", e)
            return None
        self._artwork_path = path
        return path

    def cleanup(self):
        """Clean up MPRIS2 resources."""
        self._export_artwork(None)
        try:
            if self._name_id:
                self.bus.release_name(MPRIS2_BUS_NAME)
            logger.info("MPRIS2: Cleaned up")
        except dbus.exceptions.DBusException as e:
            logger.error("MPRIS2: Error during cleanup: %s", dbus_error_name(e))
