"""Session-bus transport for the method channels.

The application layer:
- calls ``Call(channel, method, arguments_json)`` for inbound methods and
  gets the JSON-encoded result back synchronously;
- listens for ``MethodInvoked(channel, call_id, method, arguments_json)`` for
  outbound calls, and answers those with a non-zero ``call_id`` through
  ``Reply(call_id, result_json)``.
"""

import itertools
import json
import threading
from typing import Any, Callable, Dict, Optional

import dbus
import dbus.service

from bridge.channels import (
    MethodCallError, MethodChannel, decode_call_result, encode_call_result,
)
from bridge.dbus_utils import dbus_error_name
from bridge.exceptions import ChannelError, InvalidArgumentsError
from bridge.logging import get_logger

logger = get_logger(__name__)

BRIDGE_BUS_NAME = 'org.phonolite.Bridge'
BRIDGE_OBJECT_PATH = '/org/phonolite/Bridge'
BRIDGE_INTERFACE = 'org.phonolite.Bridge1'
REPLY_TIMEOUT = 30.0


class ChannelService(dbus.service.Object):
    """Exports the bridge's channels on the session bus.

    Outbound calls that expect a reply are failed with ``unavailable`` when
    no ``Reply`` arrives within ``reply_timeout`` seconds.
    """

    def __init__(self, bus, channels: Dict[str, MethodChannel], main_context,
                 reply_timeout: float = REPLY_TIMEOUT):
        super().__init__(bus, BRIDGE_OBJECT_PATH)
        self.bus = bus
        self.channels = channels
        self._main = main_context
        self.reply_timeout = reply_timeout
        self._pending: Dict[int, Callable[[Any], None]] = {}
        self._call_ids = itertools.count(1)
        self._lock = threading.Lock()
        self._name_id: Optional[int] = None
        for channel in channels.values():
            channel.transport = self

        try:
            self._name_id = bus.request_name(BRIDGE_BUS_NAME, dbus.bus.NAME_FLAG_DO_NOT_QUEUE)
            if self._name_id != dbus.bus.REQUEST_NAME_REPLY_PRIMARY_OWNER:
                logger.warning("Bridge bus name %s is already owned", BRIDGE_BUS_NAME)
        except dbus.exceptions.DBusException as e:
            logger.error("Could not request %s: %s", BRIDGE_BUS_NAME, dbus_error_name(e))

    @dbus.service.method(BRIDGE_INTERFACE, in_signature='sss', out_signature='s')
    def Call(self, channel_name, method, arguments_json):
        channel = self.channels.get(str(channel_name))
        if channel is None:
            return encode_call_result(MethodCallError('unknown_channel', str(channel_name)))
        try:
            arguments = json.loads(arguments_json) if arguments_json else None
        except ValueError:
            return encode_call_result(
                MethodCallError(InvalidArgumentsError.code, 'arguments are not JSON'))
        return encode_call_result(channel.handle_method_call(str(method), arguments))

    @dbus.service.signal(BRIDGE_INTERFACE, signature='suss')
    def MethodInvoked(self, channel_name, call_id, method, arguments_json):
        pass

    @dbus.service.method(BRIDGE_INTERFACE, in_signature='us', out_signature='')
    def Reply(self, call_id, result_json):
        callback = self._take(int(call_id))
        if callback is None:
            logger.debug("Reply for unknown or expired call %s", call_id)
            return
        callback(decode_call_result(str(result_json)))

    def send(self, channel_name: str, method: str, arguments: Any,
             reply: Optional[Callable[[Any], None]]) -> None:
        """Transport entry point used by MethodChannel.invoke_method."""
        try:
            payload = json.dumps(arguments)
        except (TypeError, ValueError) as e:
            raise ChannelError(f"{method}: arguments are not serializable: {e}") from e
        call_id = 0
        if reply is not None:
            with self._lock:
                call_id = next(self._call_ids)
                self._pending[call_id] = reply
        try:
            self.MethodInvoked(channel_name, dbus.UInt32(call_id), method, payload)
        except dbus.exceptions.DBusException as e:
            if call_id:
                self._take(call_id)
            raise ChannelError(f"{method}: could not emit: {dbus_error_name(e)}") from e
        if call_id:
            self._main.call_later(self.reply_timeout, self._expire, call_id, method)

    def _take(self, call_id: int) -> Optional[Callable[[Any], None]]:
        with self._lock:
            return self._pending.pop(call_id, None)

    def _expire(self, call_id: int, method: str) -> None:
        callback = self._take(call_id)
        if callback is None:
            return
        logger.warning("%s (call %d) got no reply within %.1fs", method, call_id,
                       self.reply_timeout)
        callback(MethodCallError(ChannelError.code, f"{method}: no reply"))

    def release(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
        for callback in pending.values():
            callback(MethodCallError(ChannelError.code, 'bridge shutting down'))
        try:
            if self._name_id:
                self.bus.release_name(BRIDGE_BUS_NAME)
        except dbus.exceptions.DBusException as e:
            logger.error("Error releasing %s: %s", BRIDGE_BUS_NAME, dbus_error_name(e))
