#!/usr/bin/env python3
"""Phonolite bridge - Main entry point."""

import signal
import sys

import dbus
from dbus.mainloop.glib import DBusGMainLoop
from gi.repository import GLib

from bridge.capabilities import PlatformCapabilities
from bridge.config import get_config
from bridge.dbus_service import ChannelService
from bridge.logging import BridgeLogger, get_logger
from bridge.mainloop import BackgroundRunner, MainContext
from bridge.mpris2 import MPRIS2Manager
from bridge.native_bridge import NativeBridge
from bridge.remote_commands import CommandCenter
from bridge.templates import InterfaceController

logger = get_logger(__name__)


def main():
    """Main entry point."""
    # Initialize config (creates directories, loads settings)
    config = get_config()

    # Initialize logging (uses config for log directory)
    BridgeLogger(log_dir=config.log_dir)

    DBusGMainLoop(set_as_default=True)
    bus = dbus.SessionBus()

    main_context = MainContext()
    command_center = CommandCenter()
    widget = MPRIS2Manager(command_center, config.artwork_cache_dir, bus=bus)
    bridge = NativeBridge(
        config, main_context, BackgroundRunner(), widget, command_center,
        capabilities=PlatformCapabilities.detect(config),
    )
    service = ChannelService(bus, bridge.channels, main_context,
                             reply_timeout=config.reply_timeout)
    bridge.start()

    scene = None
    if config.head_unit_enabled:
        scene = bridge.create_head_unit_scene()
        scene.connect(InterfaceController())
        widget.set_raise_handler(bridge.show_now_playing)

    loop = GLib.MainLoop()
    GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGTERM, loop.quit)
    GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGINT, loop.quit)
    try:
        loop.run()
    finally:
        if scene is not None:
            scene.disconnect()
        bridge.shutdown()
        service.release()
        widget.cleanup()
    return 0


if __name__ == '__main__':
    sys.exit(main())
