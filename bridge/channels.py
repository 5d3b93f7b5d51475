"""Named method channels between the bridge and the application layer.

A channel carries calls in both directions:

- inbound: the application layer calls a method by name; the channel's
  handler returns a value or raises a ``BridgeError`` which is reported back
  as a structured ``MethodCallError``;
- outbound: the bridge invokes a method on the application layer through a
  transport and optionally receives the result in a callback.
"""

import base64
import binascii
import json
import math
from typing import Any, Callable, Dict, Optional

from bridge.exceptions import BridgeError, ChannelError, InvalidArgumentsError
from bridge.logging import get_logger

logger = get_logger(__name__)

NOW_PLAYING_CHANNEL = 'phonolite/now_playing'
HEAD_UNIT_CHANNEL = 'phonolite/carplay'
PERMISSIONS_CHANNEL = 'phonolite/permissions'


class _NotImplementedMarker:
    def __repr__(self) -> str:
        return 'NOT_IMPLEMENTED'


NOT_IMPLEMENTED = _NotImplementedMarker()


class MethodCallError:
    """Structured error result of a method call."""

    def __init__(self, code: str, message: Optional[str] = None, details: Any = None):
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code, 'message': self.message, 'details': self.details}

    def __eq__(self, other) -> bool:
        return (isinstance(other, MethodCallError)
                and self.code == other.code and self.message == other.message)

    def __repr__(self) -> str:
        return f"MethodCallError({self.code!r}, {self.message!r})"


class MethodChannel:
    """One named, bidirectional channel to the application layer."""

    def __init__(self, name: str, transport=None):
        """
        Args:
            name: Channel name, e.g. ``phonolite/now_playing``
            transport: Object with ``send(channel, method, arguments, reply)``;
                None until the application layer is attached
        """
        self.name = name
        self.transport = transport
        self._handler: Optional[Callable[[str, Any], Any]] = None

    def set_method_call_handler(self, handler: Optional[Callable[[str, Any], Any]]) -> None:
        self._handler = handler

    def handle_method_call(self, method: str, arguments: Any = None) -> Any:
        """Dispatch an inbound call and return its result, never raising."""
        if self._handler is None:
            return MethodCallError('no_handler', f"{self.name} has no handler")
        try:
            return self._handler(method, arguments)
        except BridgeError as e:
            logger.warning("%s.%s rejected: %s", self.name, method, e)
            return MethodCallError(e.code, str(e))

    def invoke_method(self, method: str, arguments: Any = None,
                      callback: Optional[Callable[[Any], None]] = None) -> None:
        """Call ``method`` on the application layer.

        ``callback`` receives the result, or a ``MethodCallError`` when the call
        could not be delivered. It may run on any thread.
        """
        if self.transport is None:
            logger.debug("%s.%s dropped: no transport", self.name, method)
            if callback is not None:
                callback(MethodCallError(ChannelError.code, 'no transport attached'))
            return
        try:
            self.transport.send(self.name, method, arguments, callback)
        except ChannelError as e:
            logger.warning("%s.%s could not be sent: %s", self.name, method, e)
            if callback is not None:
                callback(MethodCallError(e.code, str(e)))


# ============================================================================
# Argument parsing
# ============================================================================

def require_mapping(arguments: Any, method: str) -> Dict[str, Any]:
    if not isinstance(arguments, dict):
        raise InvalidArgumentsError(f"{method}: missing args")
    return arguments


def parse_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def parse_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def parse_bytes(value: Any) -> Optional[bytes]:
    """Raw bytes, or base64 text as sent by JSON transports."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return None
    return None


# ============================================================================
# Wire encoding (JSON transports)
# ============================================================================

def encode_call_result(result: Any) -> str:
    """Encode an inbound call's result as ``{"result": ...}`` or ``{"error": {...}}``."""
    if result is NOT_IMPLEMENTED:
        payload = {'error': MethodCallError('not_implemented', 'method not implemented').to_dict()}
    elif isinstance(result, MethodCallError):
        payload = {'error': result.to_dict()}
    else:
        payload = {'result': result}
    return json.dumps(payload)


def decode_call_result(text: str) -> Any:
    """Decode an outbound call's reply; malformed replies become a ``bad_response`` error."""
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        return MethodCallError('bad_response', 'reply is not JSON')
    if not isinstance(payload, dict):
        return MethodCallError('bad_response', 'reply is not an object')
    error = payload.get('error')
    if isinstance(error, dict):
        return MethodCallError(str(error.get('code') or 'error'), error.get('message'),
                               error.get('details'))
    return payload.get('result')
