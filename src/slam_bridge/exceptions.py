"""Exception types raised by slam_bridge."""


class SlamBridgeError(Exception):
    """Base class for all slam_bridge errors."""


class ConfigError(SlamBridgeError, ValueError):
    """Configuration file or value is invalid."""


class InvalidRequestError(SlamBridgeError, ValueError):
    """A service request is malformed (e.g. a non-finite pose)."""


class EngineAccessError(SlamBridgeError, RuntimeError):
    """The engine was entered while another call was already inside it.

    All engine access goes through one lock, so this indicates a
    programming error such as calling the gateway from an engine callback.
    """


class EngineClosedError(SlamBridgeError, RuntimeError):
    """The engine was used after :meth:`EngineGateway.shutdown`."""
