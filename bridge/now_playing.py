"""Now-playing state: canonical snapshot, deltas, and projection onto OS surfaces.

The application layer sends partial snapshots ("deltas"). The projector merges
them into one canonical record and pushes the result to the lock-screen
widget and, when a head-unit scene is connected, to its now-playing view.

Widget port (duck-typed), implemented by ``bridge.mpris2.MPRIS2Manager``:

- ``set_now_playing_info(info: Optional[ProjectedInfo])``
- ``set_playback_state(state: PlaybackState)``
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from enum import Enum
from typing import Any, Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
from PIL import Image

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from bridge.artwork import ArtworkCache, ArtworkRef, decode_image
from bridge.channels import (
    parse_bool, parse_bytes, parse_float, parse_int, parse_str, require_mapping,
)
from bridge.exceptions import ArtworkError
from bridge.logging import get_logger
from bridge.position import PositionTracker
from bridge.scenes import SceneRegistry

logger = get_logger(__name__)

PLACEHOLDER_TITLE = "Now Playing"


class PlaybackState(Enum):
    """Playback state shown by the lock-screen widget."""

    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


class PlaybackSnapshot:
    """Canonical now-playing record. Owned and mutated only by the projector."""

    def __init__(self):
        self.track_id: Optional[str] = None
        self.epoch: int = 0
        self.title: Optional[str] = None
        self.artist: Optional[str] = None
        self.album: Optional[str] = None
        self.duration: Optional[float] = None
        self.is_playing: bool = False
        self.liked: bool = False
        self.artwork_ref: Optional[ArtworkRef] = None
        self.artwork_image: Optional[Image.Image] = None

    @property
    def has_track(self) -> bool:
        return self.track_id is not None


class SnapshotDelta:
    """Fields present in one ``setNowPlaying`` call; None means "unchanged"."""

    def __init__(self, **fields: Any):
        self.track_id: Optional[str] = fields.get('track_id')
        self.epoch: Optional[int] = fields.get('epoch')
        self.title: Optional[str] = fields.get('title')
        self.artist: Optional[str] = fields.get('artist')
        self.album: Optional[str] = fields.get('album')
        self.is_playing: Optional[bool] = fields.get('is_playing')
        self.liked: Optional[bool] = fields.get('liked')
        self.duration: Optional[float] = fields.get('duration')
        self.position: Optional[float] = fields.get('position')
        self.artwork_bytes: Optional[bytes] = fields.get('artwork_bytes')
        self.artwork_url: Optional[str] = fields.get('artwork_url')
        self.token: Optional[str] = fields.get('token')

    @classmethod
    def from_arguments(cls, arguments: Any) -> 'SnapshotDelta':
        """Parse channel arguments. Values of the wrong type count as absent.

        Raises:
            InvalidArgumentsError: If ``arguments`` is not a mapping
        """
        args = require_mapping(arguments, 'setNowPlaying')
        return cls(
            track_id=parse_str(args.get('trackId')),
            epoch=parse_int(args.get('epoch')),
            title=parse_str(args.get('title')),
            artist=parse_str(args.get('artist')),
            album=parse_str(args.get('album')),
            is_playing=parse_bool(args.get('isPlaying')),
            liked=parse_bool(args.get('liked')),
            duration=parse_float(args.get('duration')),
            position=parse_float(args.get('position')),
            artwork_bytes=parse_bytes(args.get('artworkBytes')),
            artwork_url=parse_str(args.get('artworkUrl')),
            token=parse_str(args.get('token')),
        )


class ProjectedInfo:
    """Widget-ready view of the snapshot."""

    media_type = "audio"
    is_live_stream = False
    default_playback_rate = 1.0

    def __init__(self, title: Optional[str] = None, artist: Optional[str] = None,
                 album: Optional[str] = None, duration: float = 0.0,
                 elapsed: float = 0.0, playback_rate: float = 0.0,
                 artwork: Optional[Image.Image] = None, track_id: Optional[str] = None):
        self.track_id = track_id
        self.title = title
        self.artist = artist
        self.album = album
        self.duration = duration
        self.elapsed = elapsed
        self.playback_rate = playback_rate
        self.artwork = artwork

    @property
    def is_empty(self) -> bool:
        """True before any session exists: nothing identifies a track."""
        return self.title is None and self.artwork is None

    def __repr__(self) -> str:
        return (f"ProjectedInfo(title={self.title!r}, artist={self.artist!r}, "
                f"album={self.album!r}, elapsed={self.elapsed}, rate={self.playback_rate})")


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class NowPlayingProjector:
    """Merges deltas into the canonical snapshot and projects it outward."""

    def __init__(self, widget, main_context, artwork: ArtworkCache,
                 scenes: SceneRegistry, tracker: Optional[PositionTracker] = None,
                 placeholder_title: str = PLACEHOLDER_TITLE):
        self.widget = widget
        self._main = main_context
        self.artwork = artwork
        self.artwork.on_loaded = self._on_artwork_loaded
        self.scenes = scenes
        self.tracker = tracker or PositionTracker()
        self.placeholder_title = placeholder_title
        self.snapshot = PlaybackSnapshot()

    @property
    def is_playing(self) -> bool:
        return self.snapshot.is_playing

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def ingest(self, delta: SnapshotDelta) -> None:
        """Apply a delta; the mutation always runs on the main context."""
        self._main.invoke(self._ingest, delta)

    def _ingest(self, delta: SnapshotDelta) -> None:
        snap = self.snapshot

        if delta.track_id is not None and delta.track_id != snap.track_id:
            logger.debug("Track changed %s -> %s", snap.track_id, delta.track_id)
            snap.track_id = delta.track_id
            self.tracker.reset()
            self._drop_artwork()
        if delta.epoch is not None and delta.epoch != snap.epoch:
            snap.epoch = delta.epoch
            self.tracker.reset()

        if delta.title is not None:
            snap.title = delta.title
        if delta.artist is not None:
            snap.artist = delta.artist
        if delta.album is not None:
            snap.album = delta.album
        if delta.is_playing is not None:
            snap.is_playing = delta.is_playing
        if delta.liked is not None:
            snap.liked = delta.liked
        if delta.duration is not None:
            snap.duration = delta.duration

        if delta.position is not None:
            self.tracker.apply_position(delta.position)

        if delta.artwork_bytes:
            try:
                image = decode_image(delta.artwork_bytes)
            except ArtworkError as e:
                logger.debug("Ignoring inline artwork: %s", e)
            else:
                # Inline data wins over any pending URL fetch
                self.artwork.clear()
                snap.artwork_ref = None
                snap.artwork_image = image

        self._publish(False)
        self._update_head_unit()

        if delta.artwork_url:
            ref = ArtworkRef(delta.artwork_url, delta.token or None)
            if ref != snap.artwork_ref:
                snap.artwork_ref = ref
                self.artwork.fetch(ref.url, ref.token)

    def _drop_artwork(self) -> None:
        self.snapshot.artwork_ref = None
        self.snapshot.artwork_image = None
        self.artwork.invalidate()

    def _on_artwork_loaded(self, ref: ArtworkRef, image: Image.Image) -> None:
        if ref != self.snapshot.artwork_ref:
            return
        self.snapshot.artwork_image = image
        self._publish(False)
        self._update_head_unit()

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def build_projection(self) -> ProjectedInfo:
        snap = self.snapshot
        title = _clean(snap.title)
        artist = _clean(snap.artist)
        album = _clean(snap.album)
        has_metadata = (
            bool(title or artist or album)
            or snap.duration is not None
            or self.tracker.is_set
        )
        return ProjectedInfo(
            title=(title or self.placeholder_title) if has_metadata else None,
            artist=artist or None,
            album=album or None,
            duration=snap.duration if snap.duration is not None else 0.0,
            elapsed=self.tracker.published_position,
            playback_rate=ProjectedInfo.default_playback_rate if snap.is_playing else 0.0,
            artwork=snap.artwork_image,
            track_id=snap.track_id,
        )

    def publish(self, force_refresh: bool = False) -> None:
        """Push the projection to the lock-screen widget from any thread."""
        self._main.invoke(self._publish, force_refresh)

    def _publish(self, force_refresh: bool) -> None:
        info = self.build_projection()
        if force_refresh and info.is_empty:
            return
        state = PlaybackState.PLAYING if self.snapshot.is_playing else PlaybackState.PAUSED
        if force_refresh:
            # Some widget hosts coalesce identical consecutive updates
            self.widget.set_playback_state(PlaybackState.STOPPED)
        self.widget.set_now_playing_info(info)
        self.widget.set_playback_state(state)

    def refresh_for_head_unit(self, force: bool = False) -> None:
        """Re-push everything, e.g. after the head unit shows its now-playing view."""
        def refresh():
            self._publish(force)
            self._update_head_unit()
        self._main.invoke(refresh)

    def _update_head_unit(self) -> None:
        scene = self.scenes.active()
        if scene is None:
            return
        snap = self.snapshot
        scene.update_now_playing_item(snap.title, snap.artist, snap.album, snap.artwork_image)
        scene.update_now_playing_buttons(liked=snap.liked, available=snap.has_track)
        scene.update_now_playing_visibility(snap.has_track)

    def clear(self) -> None:
        """Forget the session and show a stopped, empty state everywhere."""
        self._main.invoke(self._clear)

    def _clear(self) -> None:
        self.snapshot = PlaybackSnapshot()
        self.tracker.reset()
        self.artwork.clear()
        self.widget.set_now_playing_info(None)
        self.widget.set_playback_state(PlaybackState.STOPPED)
        scene = self.scenes.active()
        if scene is not None:
            scene.clear_now_playing_item()
            scene.update_now_playing_buttons(liked=False, available=False)
            scene.update_now_playing_visibility(False)
