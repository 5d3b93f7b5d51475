"""D-Bus helpers shared by the MPRIS2, Avahi and channel-service code."""

from typing import Any, Callable

import dbus

from bridge.logging import get_logger

logger = get_logger(__name__)


def dbus_error_name(error: Exception) -> str:
    """The D-Bus error name of ``error``, or its text for other exceptions."""
    get_name = getattr(error, 'get_dbus_name', None)
    if callable(get_name):
        name = get_name()
        if name:
            return name
    return str(error)


def dbus_safe_call(func: Callable[[], Any], default_return: Any = None, log_errors: bool = True):
    """
    Call a D-Bus function, turning D-Bus errors into ``default_return``.

    Args:
        func: Function to call
        default_return: Value to return on error
        log_errors: Whether to log errors

    Returns:
        Function result or default_return on error
    """
    try:
        return func()
    except dbus.exceptions.DBusException as e:
        if log_errors:
            logger.debug("D-Bus error in safe call: %s", dbus_error_name(e))
        return default_return
