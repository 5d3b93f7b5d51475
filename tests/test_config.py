"""Tests for configuration management."""

import pytest
from pathlib import Path
from bridge.config import Config, get_config
from bridge.exceptions import ConfigurationError


class TestConfig:
    """Test Config class."""

    def test_get_instance(self, mock_config):
        """Test singleton pattern."""
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2 is mock_config

    def test_xdg_directories(self, temp_dir, mock_config):
        """Test XDG directory resolution."""
        assert mock_config.config_dir == temp_dir / 'config' / 'phonolite'
        assert mock_config.cache_dir == temp_dir / 'cache' / 'phonolite'
        assert mock_config.data_dir == temp_dir / 'data' / 'phonolite'
        assert mock_config.config_file.exists()

    def test_defaults(self, mock_config):
        """Test default values."""
        assert mock_config.seek_backward_tolerance == 0.75
        assert mock_config.now_playing_refresh_delay == 0.25
        assert mock_config.probe_timeout == 2.0
        assert mock_config.artwork_request_timeout == 10.0
        assert mock_config.placeholder_title == 'Now Playing'
        assert mock_config.service_type == '_phonolite._tcp'
        assert mock_config.probe_on_startup is True
        assert mock_config.tab_bar_enabled is True
        assert mock_config.head_unit_enabled is False
        assert mock_config.reply_timeout == 30.0

    def test_config_get_set(self, mock_config):
        """Test getting and setting config values."""
        mock_config.set('head_unit', 'tab_bar', 'false')
        assert mock_config.get('head_unit', 'tab_bar') == 'false'
        assert mock_config.get_bool('head_unit', 'tab_bar') is False

    def test_values_survive_reload(self, mock_config):
        mock_config.set('now_playing', 'seek_backward_tolerance', '1.5')
        Config._instance = None
        assert get_config().seek_backward_tolerance == 1.5

    def test_invalid_number(self, mock_config):
        mock_config.set('local_network', 'probe_timeout', 'soon')
        with pytest.raises(ConfigurationError):
            mock_config.probe_timeout

    def test_malformed_file(self, mock_config):
        mock_config.config_file.write_text('[now_playing\nbroken')
        Config._instance = None
        with pytest.raises(ConfigurationError):
            get_config()

    def test_config_properties(self, mock_config):
        """Test config convenience properties."""
        assert isinstance(mock_config.artwork_cache_dir, Path)
        assert mock_config.artwork_cache_dir.is_dir()
        assert mock_config.log_dir.is_dir()
        assert mock_config.state_file == mock_config.data_dir / 'state.ini'
