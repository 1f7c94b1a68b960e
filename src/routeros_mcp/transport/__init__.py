"""Network transports for the API client."""

from .tcp_connection import DEFAULT_PORT, TCPConnection
