"""Exception hierarchy for the RouterOS API client.

Transport, framing and protocol errors are fatal to the exchange in
progress. ``NotFoundError`` only reports a lookup miss in a reply that was
already parsed and leaves the connection usable.
"""

from __future__ import annotations


class RouterOSError(Exception):
    """Base class for every error raised by this package."""


class TransportError(RouterOSError, ConnectionError):
    """The socket failed, or the router closed the connection."""


class FramingError(RouterOSError):
    """A word could not be read as declared by its length prefix."""


class ProtocolError(RouterOSError):
    """The router answered with something the exchange did not expect."""


class AuthenticationError(ProtocolError):
    """The router rejected the login response."""


class NotFoundError(RouterOSError, KeyError):
    """A key or named record is absent from a parsed reply."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""


class ClientClosedError(RouterOSError):
    """The client was closed and cannot be used again."""
