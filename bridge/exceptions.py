"""Exception hierarchy for the native bridge.

Every error that can cross a channel boundary carries a short machine-readable
``code`` which is reported back to the caller as a structured error.
"""


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    code = "error"


class InvalidArgumentsError(BridgeError):
    """Malformed arguments on an inbound method call."""

    code = "bad_args"


class ChannelError(BridgeError):
    """A method channel could not deliver a call."""

    code = "unavailable"


class ArtworkError(BridgeError):
    """Artwork could not be fetched or decoded."""

    code = "artwork"


class ProbeListenerError(BridgeError):
    """The local-network probe listener failed to start or run."""

    code = "probe"

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause


class ConfigurationError(BridgeError):
    """Errors related to configuration."""

    code = "config"
