"""Tests for the head-unit navigation state machine."""

from unittest.mock import Mock

import pytest

from bridge.artwork import ArtworkCache
from bridge.capabilities import PlatformCapabilities
from bridge.channels import HEAD_UNIT_CHANNEL, MethodCallError, MethodChannel
from bridge.navigation import (
    ERROR_TEXT, NavigationState, NavigationStateMachine, parse_list_result,
)
from bridge.scenes import SceneRegistry
from bridge.templates import InterfaceController, ListTemplate, TabBarTemplate
from tests.helpers import FakeResponse, png_bytes


@pytest.fixture
def scenes():
    return SceneRegistry()


@pytest.fixture
def refresh():
    return Mock()


@pytest.fixture
def toggle_like():
    return Mock()


@pytest.fixture
def interface():
    return InterfaceController()


def make_machine(transport, main_context, runner, session, scenes, refresh, toggle_like,
                 tab_bar=True):
    session.get.return_value = FakeResponse(png_bytes())
    return NavigationStateMachine(
        MethodChannel(HEAD_UNIT_CHANNEL, transport), main_context,
        ArtworkCache(main_context, runner, session=session), scenes,
        on_refresh_now_playing=refresh, on_toggle_like=toggle_like,
        capabilities=PlatformCapabilities(tab_bar=tab_bar),
    )


@pytest.fixture
def machine(transport, main_context, runner, session, scenes, refresh, toggle_like):
    return make_machine(transport, main_context, runner, session, scenes, refresh, toggle_like)


@pytest.fixture
def authorized(machine, interface, transport):
    machine.connect(interface)
    transport.reply('getAuthState', {'authorized': True})
    return machine


def texts(template):
    return [item.text for item in template.items]


class TestParsing:
    def test_rows_without_id_or_title_dropped(self):
        entries, error = parse_list_result({'items': [
            {'id': 'a', 'title': 'A'}, {'id': '', 'title': 'B'}, {'id': 'c'}, 'junk',
        ]})
        assert [e.id for e in entries] == ['a']
        assert error is None

    def test_error_and_bad_response(self):
        assert parse_list_result({'items': [], 'error': 'offline'})[1] == 'offline'
        assert parse_list_result(['not', 'a', 'dict'])[1] == 'bad_response'
        assert parse_list_result(MethodCallError('unavailable'))[1] == 'unavailable'


class TestSceneLifecycle:
    def test_connect_shows_logged_out_and_asks_auth(self, machine, interface, transport,
                                                   scenes, refresh):
        machine.connect(interface)
        assert scenes.active() is machine
        refresh.assert_called_once_with(True)
        assert machine.state is NavigationState.LOGGED_OUT
        root = interface.root_template
        assert root.title == 'Phonolite'
        assert root.items[0].text == 'Not logged into server'
        assert root.items[0].detail_text == 'Open Phonolite to log in'
        assert not root.items[0].enabled
        assert transport.methods() == ['getAuthState']

    def test_disconnect_drops_scene(self, authorized, scenes, interface):
        authorized.disconnect()
        assert scenes.active() is None
        assert authorized.interface is None
        assert authorized.home_template is None
        assert authorized.state is NavigationState.UNINITIALIZED
        assert interface.on_top_changed is None


class TestAuthRoot:
    """Test auth-driven root swaps."""

    def test_authorized_root_is_tab_bar(self, authorized, interface, transport):
        root = interface.root_template
        assert isinstance(root, TabBarTemplate)
        home, library = root.templates
        assert texts(home) == ['Loading…']
        assert (home.tab_title, home.tab_image_name) == ('Home', 'house')
        assert (library.tab_title, library.tab_image_name) == ('Library', 'music.note.list')
        assert texts(library) == ['Artists', 'Playlists', 'Liked Songs']
        assert library.item_titled('Liked Songs').detail_text == 'Loading…'
        assert not library.item_titled('Liked Songs').enabled
        assert 'getHomeActions' in transport.methods()
        assert 'getLibraryStatus' in transport.methods()

    def test_without_tab_bar_home_is_root(self, transport, main_context, runner, session,
                                          scenes, refresh, toggle_like, interface):
        machine = make_machine(transport, main_context, runner, session, scenes, refresh,
                               toggle_like, tab_bar=False)
        machine.connect(interface)
        transport.reply('getAuthState', {'authorized': True})
        assert interface.root_template is machine.home_template
        assert isinstance(interface.root_template, ListTemplate)

    def test_unchanged_auth_is_noop(self, authorized, interface):
        root = interface.root_template
        authorized.update_auth_state(True)
        assert interface.root_template is root

    def test_forced_auth_rebuilds(self, authorized, interface):
        root = interface.root_template
        authorized.update_auth_state(True, force=True)
        assert interface.root_template is not root

    def test_logout_swaps_root_and_supersedes_fetches(self, authorized, interface, transport):
        old_home = authorized.home_template
        pending_home = transport.last('getHomeActions')
        authorized.update_auth_state(False)
        assert authorized.state is NavigationState.LOGGED_OUT
        assert interface.root_template.title == 'Phonolite'
        pending_home[3]({'items': [{'id': 'startLibraryShuffle', 'title': 'Shuffle'}]})
        assert texts(old_home) == ['Loading…']

    def test_non_true_auth_reply_means_logged_out(self, machine, interface, transport):
        machine.connect(interface)
        transport.reply('getAuthState', MethodCallError('unavailable'))
        assert machine.state is NavigationState.LOGGED_OUT


class TestHome:
    def test_home_actions_with_icons(self, authorized, transport):
        transport.reply('getHomeActions', {'items': [
            {'id': 'startLibraryShuffle', 'title': 'Shuffle library'},
            {'id': 'startLikedShuffle', 'title': 'Shuffle liked'},
        ]})
        home = authorized.home_template
        assert texts(home) == ['Shuffle library', 'Shuffle liked']
        assert [item.image_name for item in home.items] == ['shuffle', 'heart.fill']

    def test_selecting_action_plays_and_shows_now_playing(self, authorized, transport,
                                                         interface, main_context, refresh):
        transport.reply('getHomeActions', {'items': [
            {'id': 'startCustomShuffle', 'title': 'Custom'},
        ]})
        refresh.reset_mock()
        assert authorized.home_template.items[0].select()
        assert transport.last('startCustomShuffle')[3] is None
        assert interface.top_template is authorized.now_playing_template
        refresh.assert_not_called()
        main_context.advance(0.2)
        refresh.assert_not_called()
        main_context.advance(0.1)
        refresh.assert_called_once_with(True)

    def test_unknown_home_action_ignored(self, authorized, transport, interface):
        calls = len(transport.calls)
        authorized.handle_home_action('deleteEverything')
        assert len(transport.calls) == calls
        assert interface.top_template is interface.root_template

    def test_empty_home(self, authorized, transport):
        transport.reply('getHomeActions', {'items': []})
        assert texts(authorized.home_template) == ['No actions available']

    def test_home_error(self, authorized, transport):
        transport.reply('getHomeActions', {'items': [{'id': 'x', 'title': 'X'}], 'error': 'down'})
        assert texts(authorized.home_template) == [ERROR_TEXT]
        assert not authorized.home_template.items[0].enabled


class TestLibrary:
    def test_liked_available(self, authorized, transport):
        transport.reply('getLibraryStatus', {'likedAvailable': True})
        liked = authorized.library_template.item_titled('Liked Songs')
        assert liked.enabled
        assert liked.detail_text == 'Play from the top'
        assert liked.select()
        assert 'playLiked' in transport.methods()

    def test_no_liked_songs(self, authorized, transport):
        transport.reply('getLibraryStatus', {'likedAvailable': False})
        liked = authorized.library_template.item_titled('Liked Songs')
        assert not liked.enabled
        assert liked.detail_text == 'No liked songs yet'

    def test_library_error(self, authorized, transport):
        transport.reply('getLibraryStatus', MethodCallError('unavailable', 'no transport'))
        liked = authorized.library_template.item_titled('Liked Songs')
        assert not liked.enabled
        assert liked.detail_text == ERROR_TEXT


class TestBrowse:
    def test_artists_loading_then_filled(self, authorized, transport, interface):
        authorized.show_artists()
        node = interface.top_template
        assert node.title == 'Artists'
        assert texts(node) == ['Loading artists…']
        transport.reply('getArtists', {'items': [{'id': 'a1', 'title': 'Artist One'}]})
        assert texts(node) == ['Artist One']

    def test_leaving_before_result_keeps_placeholder(self, authorized, transport, interface):
        authorized.show_artists()
        stale = interface.top_template
        pending = transport.last('getArtists')
        interface.pop_template()

        pending[3]({'items': [{'id': 'a1', 'title': 'Artist One'}]})
        assert texts(stale) == ['Loading artists…']
        assert stale.revision == 0

        authorized.show_artists()
        fresh = interface.top_template
        assert fresh is not stale
        assert texts(fresh) == ['Loading artists…']
        assert transport.methods().count('getArtists') == 2

    def test_buried_node_not_updated(self, authorized, transport, interface):
        authorized.show_artists()
        artists = interface.top_template
        pending = transport.last('getArtists')
        authorized.show_playlists()
        pending[3]({'items': [{'id': 'a1', 'title': 'Artist One'}]})
        assert texts(artists) == ['Loading artists…']

    def test_buried_node_reloads_when_uncovered(self, authorized, transport, interface):
        authorized.show_artists()
        artists = interface.top_template
        pending = transport.last('getArtists')
        authorized.show_playlists()
        pending[3]({'items': [{'id': 'a1', 'title': 'Artist One'}]})

        interface.pop_template()
        assert interface.top_template is artists
        assert texts(artists) == ['Loading artists…']
        assert transport.methods().count('getArtists') == 2

        transport.reply('getArtists', {'items': [{'id': 'a2', 'title': 'Artist Two'}]})
        assert texts(artists) == ['Artist Two']

    def test_filled_node_not_reloaded_when_uncovered(self, authorized, transport, interface):
        authorized.show_artists()
        transport.reply('getArtists', {'items': [{'id': 'a1', 'title': 'Artist One'}]})
        interface.top_template.items[0].select()
        interface.pop_template()
        assert texts(interface.top_template) == ['Artist One']
        assert transport.methods().count('getArtists') == 1

    def test_buried_node_pending_when_uncovered_fills_in_place(self, authorized, transport,
                                                               interface):
        authorized.show_artists()
        artists = interface.top_template
        authorized.show_playlists()
        interface.pop_template()
        transport.reply('getArtists', {'items': [{'id': 'a1', 'title': 'Artist One'}]})
        assert texts(artists) == ['Artist One']
        assert transport.methods().count('getArtists') == 1

    def test_artist_to_albums_to_playback(self, authorized, transport, interface):
        authorized.show_artists()
        transport.reply('getArtists', {'items': [{'id': 'a1', 'title': 'Artist One'}]})
        interface.top_template.items[0].select()
        albums = interface.top_template
        assert albums.title == 'Artist One'
        assert texts(albums) == ['Loading albums…']
        assert transport.last('getAlbums')[2] == {'artistId': 'a1'}

        transport.reply('getAlbums', {'items': [{'id': 'al1', 'title': 'First Album'}]})
        albums.items[0].select()
        assert transport.last('playAlbum')[2] == {'albumId': 'al1'}
        assert interface.top_template is authorized.now_playing_template

    def test_playlists(self, authorized, transport, interface):
        authorized.library_template.item_titled('Playlists').select()
        node = interface.top_template
        assert texts(node) == ['Loading playlists…']
        transport.reply('getPlaylists', {'items': [{'id': 'p1', 'title': 'Road Trip'}]})
        node.items[0].select()
        assert transport.last('playPlaylist')[2] == {'playlistId': 'p1'}

    def test_empty_and_error_rows(self, authorized, transport, interface):
        authorized.show_playlists()
        transport.reply('getPlaylists', {'items': []})
        assert texts(interface.top_template) == ['No playlists found']
        interface.pop_template()
        authorized.show_artists()
        transport.reply('getArtists', {'error': 'offline'})
        assert texts(interface.top_template) == [ERROR_TEXT]

    def test_disabled_entry_not_selectable(self, authorized, transport, interface):
        authorized.show_artists()
        transport.reply('getArtists', {'items': [{'id': 'a1', 'title': 'A', 'enabled': False}]})
        assert not interface.top_template.items[0].select()

    def test_row_artwork_loaded(self, authorized, transport, interface, runner, main_context):
        authorized.show_artists()
        transport.reply('getArtists', {'items': [
            {'id': 'a1', 'title': 'A', 'artworkUrl': 'https://art/a1.png', 'token': 'tok'},
        ]})
        item = interface.top_template.items[0]
        assert item.image is None
        runner.run_all()
        main_context.run_pending()
        assert item.image.size == (4, 4)


class TestNowPlaying:
    def test_show_now_playing_twice_pushes_once(self, authorized, interface):
        authorized.show_now_playing()
        authorized.show_now_playing()
        assert interface.templates.count(authorized.now_playing_template) == 1

    def test_button_visibility_requires_auth_and_track(self, authorized, interface):
        home = authorized.home_template
        assert not home.shows_now_playing_button
        authorized.update_now_playing_visibility(True)
        assert home.shows_now_playing_button
        assert authorized.library_template.shows_now_playing_button

        authorized.show_artists()
        assert interface.top_template.shows_now_playing_button

        authorized.update_auth_state(False)
        assert not interface.root_template.shows_now_playing_button
        assert not authorized.now_playing_button_visible

    def test_logged_in_later_shows_button_for_existing_track(self, machine, interface,
                                                             transport):
        machine.connect(interface)
        machine.update_now_playing_visibility(True)
        assert not interface.root_template.shows_now_playing_button
        transport.reply('getAuthState', {'authorized': True})
        assert machine.home_template.shows_now_playing_button

    def test_like_button(self, authorized, toggle_like):
        authorized.update_now_playing_buttons(liked=True, available=True)
        buttons = authorized.now_playing_template.buttons
        assert [b.image_name for b in buttons] == ['heart.fill']
        buttons[0].press()
        toggle_like.assert_called_once_with()

        authorized.update_now_playing_buttons(liked=False, available=True)
        assert authorized.now_playing_template.buttons[0].image_name == 'heart'
        authorized.update_now_playing_buttons(liked=False, available=False)
        assert authorized.now_playing_template.buttons == []

    def test_summary_item(self, authorized):
        authorized.update_now_playing_item('Song', 'Artist', 'Album')
        item = authorized.now_playing_template.summary_item
        assert (item.text, item.detail_text) == ('Song', 'Artist • Album')
        authorized.update_now_playing_item('', None, 'Album')
        assert (item.text, item.detail_text) == ('Now Playing', 'Album')
        authorized.clear_now_playing_item()
        assert (item.text, item.detail_text, item.image) == ('Now Playing', 'Tap to open', None)


class TestInterfaceController:
    def test_pop_reports_new_top(self):
        interface = InterfaceController()
        root, child = ListTemplate('Root'), ListTemplate('Child')
        interface.set_root_template(root)
        interface.push_template(child)
        interface.on_top_changed = Mock()
        assert interface.pop_template() is child
        interface.on_top_changed.assert_called_once_with(root)

    def test_root_is_never_popped(self):
        interface = InterfaceController()
        interface.set_root_template(ListTemplate('Root'))
        interface.on_top_changed = Mock()
        assert interface.pop_template() is None
        interface.on_top_changed.assert_not_called()
