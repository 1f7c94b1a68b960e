"""Client and MCP server for the RouterOS binary API."""

from .client import Client
from .errors import (
    AuthenticationError,
    ClientClosedError,
    FramingError,
    NotFoundError,
    ProtocolError,
    RouterOSError,
    TransportError,
)
from .models.reply import Pair, Query, Reply

__version__ = "0.1.0"
