"""Pytest configuration and fixtures."""

import pytest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import MagicMock

# Mock GLib and dbus-python before imports
import sys


class FakeDBusException(Exception):
    """Stand-in for dbus.exceptions.DBusException carrying an error name."""

    def __init__(self, *args, name=None):
        super().__init__(*args)
        self._dbus_name = name

    def get_dbus_name(self):
        return self._dbus_name


class FakeDBusObject:
    """Stand-in for dbus.service.Object; exported methods stay plain methods."""

    def __init__(self, bus=None, object_path=None):
        self.bus_for_tests = bus
        self.object_path = object_path


def _passthrough_decorator(*args, **kwargs):
    return lambda func: func


sys.modules['gi'] = MagicMock()
sys.modules['gi.repository'] = MagicMock()
sys.modules['gi.repository.GLib'] = sys.modules['gi.repository'].GLib

_dbus = MagicMock()
_dbus.exceptions.DBusException = FakeDBusException
_dbus.service.Object = FakeDBusObject
_dbus.service.method = _passthrough_decorator
_dbus.service.signal = _passthrough_decorator
_dbus.UInt32 = int
_dbus.ObjectPath = str
sys.modules['dbus'] = _dbus
sys.modules['dbus.exceptions'] = _dbus.exceptions
sys.modules['dbus.service'] = _dbus.service
sys.modules['dbus.mainloop'] = _dbus.mainloop
sys.modules['dbus.mainloop.glib'] = _dbus.mainloop.glib


from tests.helpers import (  # noqa: E402
    FakeListenerFactory, FakeMainContext, FakeRunner, RecordingTransport, RecordingWidget,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Fresh configuration rooted in a temporary directory."""
    from bridge.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(temp_dir / 'cache'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    Config._instance = None
    config = Config.get_instance()
    yield config
    Config._instance = None


@pytest.fixture
def main_context():
    return FakeMainContext()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def widget():
    return RecordingWidget()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def listener_factory():
    return FakeListenerFactory()


@pytest.fixture
def session():
    """requests.Session stand-in; configure ``session.get`` per test."""
    return MagicMock()
