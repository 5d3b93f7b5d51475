"""Local-network capability probe.

The probe publishes a throw-away service on an ephemeral port. If the host
lets the service come up, local-network access is granted; a permission
failure means denied; anything else leaves the answer unknown so a later
probe can try again. Only definite answers are persisted.
"""

import errno
import socket
import threading
from enum import Enum
from typing import Callable, Optional

import dbus

from bridge.dbus_utils import dbus_error_name, dbus_safe_call
from bridge.events import EventBus
from bridge.exceptions import ProbeListenerError
from bridge.logging import get_logger
from bridge.preferences import Preferences

logger = get_logger(__name__)

STATUS_KEY = 'local_network_status'
PROBE_TIMEOUT = 2.0

DENIED_DBUS_ERRORS = {
    'org.freedesktop.DBus.Error.AccessDenied',
    'org.freedesktop.Avahi.NotPermittedError',
}

# Avahi D-Bus API
AVAHI_BUS_NAME = 'org.freedesktop.Avahi'
AVAHI_SERVER_PATH = '/'
AVAHI_SERVER_INTERFACE = 'org.freedesktop.Avahi.Server'
AVAHI_ENTRY_GROUP_INTERFACE = 'org.freedesktop.Avahi.EntryGroup'
AVAHI_IF_UNSPEC = -1
AVAHI_PROTO_UNSPEC = -1
ENTRY_GROUP_ESTABLISHED = 2
ENTRY_GROUP_COLLISION = 3
ENTRY_GROUP_FAILURE = 4


class PermissionStatus(Enum):
    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


def is_permission_denied(error: Optional[BaseException]) -> bool:
    """Whether ``error`` belongs to the permission-denied class."""
    if error is None:
        return False
    if isinstance(error, ProbeListenerError):
        return is_permission_denied(error.cause)
    if isinstance(error, OSError):
        return error.errno in (errno.EACCES, errno.EPERM)
    if callable(getattr(error, 'get_dbus_name', None)):
        return dbus_error_name(error) in DENIED_DBUS_ERRORS
    return False


class AvahiServiceListener:
    """TCP listener on an ephemeral port, advertised through Avahi."""

    def __init__(self, service_name: str, service_type: str,
                 on_ready: Callable[[], None],
                 on_failed: Callable[[Exception], None],
                 bus=None):
        self.service_name = service_name
        self.service_type = service_type
        self._on_ready = on_ready
        self._on_failed = on_failed
        self._bus = bus
        self._socket: Optional[socket.socket] = None
        self._group = None
        self._signal_match = None

    @property
    def port(self) -> Optional[int]:
        return self._socket.getsockname()[1] if self._socket else None

    def start(self) -> None:
        """Open the socket and publish it.

        Raises:
            ProbeListenerError: If either step fails; ``cause`` holds the original error
        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._socket = sock
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(('', 0))
            sock.listen(1)
            sock.setblocking(False)
        except OSError as e:
            self.cancel()
            raise ProbeListenerError(f"Could not open probe listener: {e}", cause=e) from e

        try:
            bus = self._bus or dbus.SystemBus()
            server = dbus.Interface(bus.get_object(AVAHI_BUS_NAME, AVAHI_SERVER_PATH),
                                    AVAHI_SERVER_INTERFACE)
            group = dbus.Interface(bus.get_object(AVAHI_BUS_NAME, server.EntryGroupNew()),
                                   AVAHI_ENTRY_GROUP_INTERFACE)
            self._group = group
            self._signal_match = group.connect_to_signal('StateChanged', self._on_state_changed)
            group.AddService(
                dbus.Int32(AVAHI_IF_UNSPEC), dbus.Int32(AVAHI_PROTO_UNSPEC), dbus.UInt32(0),
                self.service_name, self.service_type, '', '',
                dbus.UInt16(self.port), dbus.Array([], signature='ay'),
            )
            group.Commit()
        except dbus.exceptions.DBusException as e:
            self.cancel()
            raise ProbeListenerError(f"Could not publish probe service: {dbus_error_name(e)}",
                                     cause=e) from e
        logger.debug("Probe service %s published on port %s", self.service_type, self.port)

    def _on_state_changed(self, state, error=''):
        if state == ENTRY_GROUP_ESTABLISHED:
            self._on_ready()
        elif state in (ENTRY_GROUP_COLLISION, ENTRY_GROUP_FAILURE):
            cause = dbus.exceptions.DBusException(str(error), name=str(error)) if error else None
            self._on_failed(ProbeListenerError(f"Avahi entry group state {state}: {error}",
                                               cause=cause))

    def cancel(self) -> None:
        """Withdraw the service and close the socket. Safe to call repeatedly."""
        if self._signal_match is not None:
            dbus_safe_call(self._signal_match.remove)
            self._signal_match = None
        if self._group is not None:
            dbus_safe_call(self._group.Free)
            self._group = None
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError as e:
                logger.debug("Error closing probe socket: %s", e)
            self._socket = None


class LocalCapabilityProbe:
    """Runs the probe and keeps the last definite answer."""

    def __init__(self, preferences: Preferences, event_bus: EventBus, main_context,
                 listener_factory: Callable[[Callable[[], None], Callable[[Exception], None]], object],
                 timeout: float = PROBE_TIMEOUT, supported: bool = True):
        """
        Args:
            preferences: Where the last definite answer is persisted
            event_bus: Receives ``permissions.local_network_changed``
            main_context: UI-affinity context for the timeout and events
            listener_factory: ``factory(on_ready, on_failed)`` returning an
                object with ``start()`` and ``cancel()``
            timeout: Seconds before the listener is torn down regardless
            supported: Whether the platform offers service discovery at all
        """
        self.preferences = preferences
        self.event_bus = event_bus
        self._main = main_context
        self._listener_factory = listener_factory
        self.timeout = timeout
        self.supported = supported
        self._lock = threading.Lock()
        self._listener = None
        self._run = 0
        self._resolved = True

        stored = preferences.get_string(STATUS_KEY)
        try:
            self._status = PermissionStatus(stored) if stored else PermissionStatus.UNKNOWN
        except ValueError:
            logger.warning("Ignoring unknown stored permission status %r", stored)
            self._status = PermissionStatus.UNKNOWN

    @property
    def status(self) -> PermissionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    def request_permission(self) -> None:
        """Start one probe run; a run still in progress is torn down first."""
        if not self.supported:
            logger.debug("Service discovery unavailable; skipping local-network probe")
            return
        with self._lock:
            self._stop_listener_locked()
            self._run += 1
            run = self._run
            self._resolved = False

        listener = self._listener_factory(lambda: self._on_ready(run),
                                          lambda error: self._on_failed(run, error))
        with self._lock:
            self._listener = listener
        try:
            listener.start()
        except ProbeListenerError as e:
            with self._lock:
                if run != self._run or self._resolved:
                    return
                self._resolved = True
                self._stop_listener_locked()
            if is_permission_denied(e):
                self._notify(PermissionStatus.DENIED)
            else:
                logger.warning("Local-network probe could not start: %s", e)
            return
        self._main.call_later(self.timeout, self._on_timeout, run)

    def _on_ready(self, run: int) -> None:
        with self._lock:
            if run != self._run or self._resolved:
                return
            self._resolved = True
            self._stop_listener_locked()
        self._notify(PermissionStatus.GRANTED)

    def _on_failed(self, run: int, error: Exception) -> None:
        with self._lock:
            if run != self._run or self._resolved:
                return
            self._resolved = True
            self._stop_listener_locked()
        if is_permission_denied(error):
            self._notify(PermissionStatus.DENIED)
        else:
            logger.info("Local-network probe failed without a permission error: %s", error)

    def _on_timeout(self, run: int) -> None:
        with self._lock:
            if run != self._run:
                return
            if not self._resolved:
                logger.debug("Local-network probe timed out")
            self._resolved = True
            self._stop_listener_locked()

    def stop(self) -> None:
        with self._lock:
            self._resolved = True
            self._stop_listener_locked()

    def _stop_listener_locked(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.cancel()

    def _notify(self, status: PermissionStatus) -> None:
        with self._lock:
            if status == self._status:
                return
            self._status = status
        if status is not PermissionStatus.UNKNOWN:
            self.preferences.set_string(STATUS_KEY, status.value)
        logger.info("Local-network permission: %s", status.value)
        self._main.invoke(self.event_bus.publish,
                          EventBus.LOCAL_NETWORK_PERMISSION_CHANGED, {"status": status.value})
