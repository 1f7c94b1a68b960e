"""Blocking TCP connection to a RouterOS API service.

The API listens on port 8728 in plain text. Reads block with no timeout
once the connection is up; a caller that needs one must close the
connection from another thread.
"""

from __future__ import annotations

import logging
import socket

from ..errors import TransportError
from ..protocol.framing import encode_sentence, read_word

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8728
CONNECT_TIMEOUT_S = 10.0
RECV_CHUNK = 4096


class TCPConnection:
    """Owns the socket to one router.

    Usage::

        conn = TCPConnection("192.168.88.1")
        conn.open()
        conn.write_sentence(["/system/identity/print", ""])
        word = conn.read_word()
        conn.close()
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        connect_timeout: float | None = CONNECT_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    def open(self) -> None:
        """Dial the router.

        Raises:
            TransportError: If the connection cannot be established.
        """
        try:
            sock = socket.create_connection(
                (self._host, self._port), timeout=self._connect_timeout
            )
        except OSError as e:
            raise TransportError(
                f"Could not connect to router at {self.address}: {e}"
            ) from e

        sock.settimeout(None)
        self._sock = sock
        self._connected = True
        logger.info("Connected to %s", self.address)

    def close(self) -> None:
        """Close the socket, waking any thread blocked in a read."""
        if not self._connected:
            return

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Shutdown of %s failed: %s", self.address, e)
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing connection: %s", e)
        finally:
            self._sock = None
            self._connected = False
            logger.info("Disconnected from %s", self.address)

    def write(self, data: bytes) -> None:
        """Send raw bytes.

        Raises:
            TransportError: If not connected or the send fails.
        """
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Write to {self.address} failed: {e}") from e

    def write_sentence(self, words: list[str]) -> None:
        """Encode and send a list of words in one write."""
        for word in words:
            logger.debug("<<< %r", word)
        self.write(encode_sentence(words))

    def read_exact(self, size: int) -> bytes:
        """Read ``size`` bytes, returning fewer only if the router hung up."""
        buf = bytearray()
        while len(buf) < size:
            sock = self._require_socket()
            try:
                chunk = sock.recv(min(size - len(buf), RECV_CHUNK))
            except OSError as e:
                raise TransportError(f"Read from {self.address} failed: {e}") from e
            if not chunk:
                break
            buf += chunk
        return bytes(buf)

    def read_word(self) -> str:
        """Read one framed word."""
        word = read_word(self.read_exact)
        logger.debug(">>> %r", word)
        return word

    def _require_socket(self) -> socket.socket:
        sock = self._sock
        if not self._connected or sock is None:
            raise TransportError("Not connected to router")
        return sock
