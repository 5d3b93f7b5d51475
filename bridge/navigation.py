"""Head-unit navigation: authorized tabs, browse lists, and the now-playing view.

Every list node is built with a single disabled "Loading" row, then filled by
one asynchronous call to the application layer. Results are applied only to
nodes that are still on screen; a node the driver has left, or a tab set that
was replaced by an auth change, keeps whatever it showed. A node whose result
was dropped while it was buried is reloaded when the driver pops back to it.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from bridge.artwork import ArtworkCache
from bridge.capabilities import PlatformCapabilities
from bridge.channels import MethodCallError, MethodChannel
from bridge.logging import get_logger
from bridge.scenes import SceneRegistry
from bridge.templates import (
    InterfaceController,
    ListItem,
    ListTemplate,
    NowPlayingButton,
    NowPlayingTemplate,
    TabBarTemplate,
    set_now_playing_button_visible,
)

logger = get_logger(__name__)


# ============================================================================
# Constants
# ============================================================================
NOW_PLAYING_REFRESH_DELAY = 0.25
ERROR_TEXT = "Connect to a server"
PLACEHOLDER_TITLE = "Now Playing"
PLACEHOLDER_DETAIL = "Tap to open"

# Home action id -> icon
HOME_ACTIONS: Dict[str, str] = {
    "startLibraryShuffle": "shuffle",
    "startLikedShuffle": "heart.fill",
    "startCustomShuffle": "line.3.horizontal.decrease.circle",
}


class NavigationState(Enum):
    """Which root the head unit shows."""

    UNINITIALIZED = "uninitialized"
    AUTHORIZED = "authorized"
    LOGGED_OUT = "logged_out"


class ListEntry:
    """One row as returned by the application layer."""

    def __init__(self, entry_id: str, title: str, subtitle: Optional[str] = None,
                 enabled: bool = True, artwork_url: Optional[str] = None,
                 token: Optional[str] = None):
        self.id = entry_id
        self.title = title
        self.subtitle = subtitle
        self.enabled = enabled
        self.artwork_url = artwork_url
        self.token = token

    def __repr__(self) -> str:
        return f"ListEntry({self.id!r}, {self.title!r})"


# ============================================================================
# Result parsing
# ============================================================================
def _error_text(result: Any) -> Optional[str]:
    if isinstance(result, MethodCallError):
        return result.message or result.code or "error"
    if not isinstance(result, dict):
        return "bad_response"
    error = result.get("error")
    return error if isinstance(error, str) and error else None


def parse_list_result(result: Any) -> Tuple[List[ListEntry], Optional[str]]:
    """Parse ``{items: [...], error?}``. Rows without id or title are dropped."""
    error = _error_text(result)
    if not isinstance(result, dict):
        return [], error
    raw_items = result.get("items")
    if not isinstance(raw_items, list):
        raw_items = []
    entries = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        entry_id = raw.get("id") if isinstance(raw.get("id"), str) else ""
        title = raw.get("title") if isinstance(raw.get("title"), str) else ""
        if not entry_id or not title:
            continue
        subtitle = raw.get("subtitle")
        artwork_url = raw.get("artworkUrl")
        token = raw.get("token")
        enabled = raw.get("enabled")
        entries.append(ListEntry(
            entry_id,
            title,
            subtitle=subtitle if isinstance(subtitle, str) else None,
            enabled=enabled if isinstance(enabled, bool) else True,
            artwork_url=artwork_url if isinstance(artwork_url, str) else None,
            token=token if isinstance(token, str) else None,
        ))
    return entries, error


def parse_status_result(result: Any) -> Tuple[bool, Optional[str]]:
    """Parse ``{likedAvailable, error?}``."""
    error = _error_text(result)
    if not isinstance(result, dict):
        return False, error
    return result.get("likedAvailable") is True, error


def disabled_item(text: str, detail: Optional[str] = None) -> ListItem:
    return ListItem(text, detail, enabled=False)


class NavigationStateMachine:
    """Template tree of one head-unit scene."""

    def __init__(self, channel: MethodChannel, main_context, artwork: ArtworkCache,
                 scenes: SceneRegistry,
                 on_refresh_now_playing: Callable[[bool], None],
                 on_toggle_like: Callable[[], None],
                 capabilities: Optional[PlatformCapabilities] = None,
                 scene_id: str = "head-unit",
                 refresh_delay: float = NOW_PLAYING_REFRESH_DELAY):
        """
        Args:
            channel: Head-unit channel to the application layer
            main_context: UI-affinity context
            artwork: Loads row artwork
            scenes: Registry this scene joins while connected
            on_refresh_now_playing: Re-pushes now-playing state (arg: force)
            on_toggle_like: Sends the like toggle to the application layer
            capabilities: Platform flags (tab bar availability)
            scene_id: Registry key of this scene
            refresh_delay: Seconds between showing now playing and refreshing it
        """
        self.channel = channel
        self._main = main_context
        self.artwork = artwork
        self.scenes = scenes
        self._on_refresh_now_playing = on_refresh_now_playing
        self._on_toggle_like = on_toggle_like
        self.capabilities = capabilities or PlatformCapabilities()
        self.scene_id = scene_id
        self.refresh_delay = refresh_delay

        self.interface: Optional[InterfaceController] = None
        self.state = NavigationState.UNINITIALIZED
        self.authorized = False
        self.root_template = None
        self.home_template: Optional[ListTemplate] = None
        self.library_template: Optional[ListTemplate] = None
        self.logged_out_template: Optional[ListTemplate] = None
        self.now_playing_template = NowPlayingTemplate()
        self.now_playing_button_visible = False
        self._has_track = False
        # Pushed list node -> (loading text, loader)
        self._loaders: Dict[ListTemplate, Tuple[str, Callable[[ListTemplate], None]]] = {}
        self._needs_reload: Set[ListTemplate] = set()

    # ------------------------------------------------------------------
    # Scene lifecycle
    # ------------------------------------------------------------------

    def connect(self, interface: InterfaceController) -> None:
        self._main.invoke(self._connect, interface)

    def _connect(self, interface: InterfaceController) -> None:
        self.interface = interface
        interface.on_top_changed = self._on_top_changed
        self.scenes.register(self.scene_id, self)
        self._on_refresh_now_playing(True)
        self._set_auth_state(False, force=True)
        self._request_auth_state()

    def disconnect(self) -> None:
        self._main.invoke(self._disconnect)

    def _disconnect(self) -> None:
        if self.interface is not None:
            self.interface.on_top_changed = None
        self.interface = None
        self._loaders.clear()
        self._needs_reload.clear()
        self.root_template = None
        self.home_template = None
        self.library_template = None
        self.logged_out_template = None
        self.state = NavigationState.UNINITIALIZED
        self.scenes.unregister(self.scene_id, self)

    # ------------------------------------------------------------------
    # Auth root switch
    # ------------------------------------------------------------------

    def update_auth_state(self, authorized: bool, force: bool = False) -> None:
        self._main.invoke(self._set_auth_state, authorized, force)

    def _set_auth_state(self, authorized: bool, force: bool = False) -> None:
        if not force and self.state is not NavigationState.UNINITIALIZED \
                and self.authorized == authorized:
            return
        self.authorized = authorized
        if self.interface is None:
            return
        if authorized:
            self._show_authorized_root()
        else:
            self._show_logged_out_root()

    def _request_auth_state(self) -> None:
        def on_result(result):
            authorized = isinstance(result, dict) and result.get("authorized") is True
            self.update_auth_state(authorized)
        self.channel.invoke_method("getAuthState", None, on_result)

    def _show_authorized_root(self) -> None:
        home = ListTemplate("Home", [disabled_item("Loading…")],
                            tab_title="Home", tab_image_name="house")
        library = ListTemplate("Library", self._library_items(False, "Loading…"),
                               tab_title="Library", tab_image_name="music.note.list")
        self.home_template = home
        self.library_template = library
        self.logged_out_template = None
        self.now_playing_button_visible = self.authorized and self._has_track
        if self.capabilities.tab_bar:
            self.root_template = TabBarTemplate([home, library])
        else:
            self.root_template = home
        self._set_root(self.root_template)
        self.state = NavigationState.AUTHORIZED
        self._apply_now_playing_button_visibility()
        logger.info("Head unit showing authorized root")

        self._load_home(home)
        self._load_library(library)

    def _show_logged_out_root(self) -> None:
        self.now_playing_button_visible = False
        self._apply_now_playing_button_visibility()
        template = ListTemplate("Phonolite", [
            disabled_item("Not logged into server", "Open Phonolite to log in"),
        ])
        self.logged_out_template = template
        self.home_template = None
        self.library_template = None
        self.root_template = template
        self._set_root(template)
        self.state = NavigationState.LOGGED_OUT
        logger.info("Head unit showing logged-out root")

    # ------------------------------------------------------------------
    # List nodes
    # ------------------------------------------------------------------

    def _set_root(self, template) -> None:
        self._loaders.clear()
        self._needs_reload.clear()
        self.interface.set_root_template(template)

    def is_live(self, template) -> bool:
        """Whether results for ``template`` may still be applied."""
        if self.interface is None or template is None:
            return False
        if template is self.home_template or template is self.library_template:
            return True
        return template is self.interface.top_template

    def _on_top_changed(self, top) -> None:
        on_stack = self.interface.templates
        for template in list(self._loaders):
            if template not in on_stack:
                del self._loaders[template]
                self._needs_reload.discard(template)
        if top in self._needs_reload:
            self._needs_reload.discard(top)
            loading_text, loader = self._loaders[top]
            logger.debug("Reloading %r after returning to it", top)
            top.update_items([disabled_item(loading_text)])
            loader(top)

    def _request_list(self, method: str, arguments: Optional[Dict[str, Any]],
                      apply: Callable[[List[ListEntry], Optional[str]], None]) -> None:
        def on_result(result):
            entries, error = parse_list_result(result)
            self._main.invoke(apply, entries, error)
        self.channel.invoke_method(method, arguments, on_result)

    def _fill_list(self, template: ListTemplate, entries: List[ListEntry],
                   error: Optional[str], empty_text: str,
                   on_select: Callable[[ListEntry], None]) -> Optional[List[ListItem]]:
        if not self.is_live(template):
            logger.debug("Discarding result for superseded %r", template)
            if template in self._loaders:
                self._needs_reload.add(template)
            return None
        items = self._build_list_items(entries, empty_text, error, on_select)
        template.update_items(items)
        return items

    def _build_list_items(self, entries: List[ListEntry], empty_text: str,
                          error: Optional[str],
                          on_select: Callable[[ListEntry], None]) -> List[ListItem]:
        if error:
            return [disabled_item(ERROR_TEXT)]
        if not entries:
            return [disabled_item(empty_text)]
        items = []
        for entry in entries:
            item = ListItem(entry.title, entry.subtitle, enabled=entry.enabled)
            if entry.enabled:
                item.handler = lambda _item, entry=entry: on_select(entry)
            if entry.artwork_url:
                self._load_row_artwork(item, entry)
            items.append(item)
        return items

    def _load_row_artwork(self, item: ListItem, entry: ListEntry) -> None:
        def on_image(image):
            if image is not None:
                item.image = image
        self.artwork.fetch_image(entry.artwork_url, entry.token, on_image)

    def _load_home(self, template: ListTemplate) -> None:
        def apply(entries, error):
            items = self._fill_list(template, entries, error, "No actions available",
                                    lambda entry: self.handle_home_action(entry.id))
            for item, entry in zip(items or [], entries if not error else []):
                item.image_name = HOME_ACTIONS.get(entry.id)
        self._request_list("getHomeActions", None, apply)

    def _library_items(self, liked_enabled: bool, liked_subtitle: str) -> List[ListItem]:
        artists = ListItem("Artists", "Browse artists", image_name="music.mic",
                           handler=lambda _item: self.show_artists())
        playlists = ListItem("Playlists", "Pick a playlist", image_name="music.note.list",
                             handler=lambda _item: self.show_playlists())
        liked = ListItem("Liked Songs", liked_subtitle, enabled=liked_enabled,
                         image_name="heart.fill")
        if liked_enabled:
            liked.handler = lambda _item: self._play("playLiked")
        return [artists, playlists, liked]

    def _load_library(self, template: ListTemplate) -> None:
        def apply(liked_available: bool, error: Optional[str]):
            if not self.is_live(template):
                logger.debug("Discarding library status for superseded template")
                return
            if error:
                subtitle = ERROR_TEXT
            elif liked_available:
                subtitle = "Play from the top"
            else:
                subtitle = "No liked songs yet"
            template.update_items(self._library_items(liked_available, subtitle))

        def on_result(result):
            liked_available, error = parse_status_result(result)
            self._main.invoke(apply, liked_available, error)
        self.channel.invoke_method("getLibraryStatus", None, on_result)

    def _push_list(self, title: str, loading_text: str,
                   loader: Callable[[ListTemplate], None]) -> None:
        if self.interface is None:
            return
        template = ListTemplate(title, [disabled_item(loading_text)])
        set_now_playing_button_visible(template, self.now_playing_button_visible)
        self.interface.push_template(template)
        self._loaders[template] = (loading_text, loader)
        loader(template)

    def show_artists(self) -> None:
        self._push_list("Artists", "Loading artists…", self._load_artists)

    def _load_artists(self, template: ListTemplate) -> None:
        self._request_list("getArtists", None, lambda entries, error: self._fill_list(
            template, entries, error, "No artists found",
            lambda entry: self.show_albums(entry.id, entry.title)))

    def show_albums(self, artist_id: str, title: str) -> None:
        def load(template):
            self._request_list("getAlbums", {"artistId": artist_id},
                               lambda entries, error: self._fill_list(
                                   template, entries, error, "No albums found",
                                   lambda entry: self._play("playAlbum", {"albumId": entry.id})))
        self._push_list(title, "Loading albums…", load)

    def show_playlists(self) -> None:
        self._push_list("Playlists", "Loading playlists…", self._load_playlists)

    def _load_playlists(self, template: ListTemplate) -> None:
        self._request_list("getPlaylists", None, lambda entries, error: self._fill_list(
            template, entries, error, "No playlists found",
            lambda entry: self._play("playPlaylist", {"playlistId": entry.id})))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def handle_home_action(self, action_id: str) -> None:
        if action_id not in HOME_ACTIONS:
            logger.debug("Ignoring unknown home action %s", action_id)
            return
        self._play(action_id)

    def _play(self, method: str, arguments: Optional[Dict[str, Any]] = None) -> None:
        """Fire-and-forget playback request, then switch to now playing."""
        self.channel.invoke_method(method, arguments)
        self.show_now_playing()

    def show_now_playing(self) -> None:
        if self.interface is None:
            return
        if self.interface.top_template is self.now_playing_template:
            return
        self.interface.push_template(self.now_playing_template)
        # Give the application layer time to start playback before refreshing
        self._main.call_later(self.refresh_delay, self._on_refresh_now_playing, True)

    # ------------------------------------------------------------------
    # Now-playing projection (called by NowPlayingProjector)
    # ------------------------------------------------------------------

    def update_now_playing_item(self, title: Optional[str], artist: Optional[str],
                                album: Optional[str], artwork: Any = None) -> None:
        clean_title = (title or "").strip()
        clean_artist = (artist or "").strip()
        clean_album = (album or "").strip()
        if clean_artist and clean_album:
            detail = f"{clean_artist} • {clean_album}"
        else:
            detail = clean_artist or clean_album or PLACEHOLDER_DETAIL

        def apply():
            item = self.now_playing_template.summary_item
            item.text = clean_title or PLACEHOLDER_TITLE
            item.detail_text = detail
            item.image = artwork
        self._main.invoke(apply)

    def clear_now_playing_item(self) -> None:
        def apply():
            item = self.now_playing_template.summary_item
            item.text = PLACEHOLDER_TITLE
            item.detail_text = PLACEHOLDER_DETAIL
            item.image = None
        self._main.invoke(apply)

    def update_now_playing_buttons(self, liked: bool, available: bool) -> None:
        def apply():
            if not available:
                self.now_playing_template.update_now_playing_buttons([])
                return
            image_name = "heart.fill" if liked else "heart"
            self.now_playing_template.update_now_playing_buttons(
                [NowPlayingButton(image_name, self._on_toggle_like)])
        self._main.invoke(apply)

    def update_now_playing_visibility(self, has_track: bool) -> None:
        def apply():
            self._has_track = has_track
            self.now_playing_button_visible = self.authorized and has_track
            self._apply_now_playing_button_visibility()
        self._main.invoke(apply)

    def _apply_now_playing_button_visibility(self) -> None:
        visible = self.now_playing_button_visible
        targets = [self.home_template, self.library_template, self.logged_out_template]
        if self.interface is not None:
            targets.extend(self.interface.templates)
        for template in targets:
            if template is not None:
                set_now_playing_button_visible(template, visible)
