"""RouterOS API client.

Usage::

    with Client("192.168.88.1:8728") as client:
        client.connect("admin", "secret")
        reply = client.query(
            "/interface/print",
            Query(pairs=[Pair("type", "ether")], proplist=["name", "running"]),
        )
        for row in reply.sub_pairs:
            print(row["name"], row["running"])

One command may be in flight per client. Do not issue a command while
a ``listen`` stream on the same client is still being consumed.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator

from .errors import (
    AuthenticationError,
    ClientClosedError,
    NotFoundError,
    ProtocolError,
    RouterOSError,
    TransportError,
)
from .models.reply import Pair, Query, Reply
from .protocol.commands import (
    call_words,
    listen_words,
    login_response,
    login_response_words,
    login_words,
    query_words,
)
from .protocol.parser import iter_replies, receive
from .transport.tcp_connection import CONNECT_TIMEOUT_S, DEFAULT_PORT, TCPConnection

logger = logging.getLogger(__name__)

# Called once per streamed reply with its records, or with an error when
# the stream fails.
PairIterator = Callable[[list[dict[str, str]], Exception | None], None]


def parse_address(address: str) -> tuple[str, int]:
    """Split ``host[:port]`` into host and port.

    IPv6 hosts must be bracketed when a port is given (``[fe80::1]:8728``).
    """
    address = address.strip()
    if not address:
        raise ValueError("Router address is empty")

    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"Malformed router address {address!r}")
        if not rest:
            return host, DEFAULT_PORT
        if not rest.startswith(":"):
            raise ValueError(f"Malformed router address {address!r}")
        port_text = rest[1:]
    elif address.count(":") == 1:
        host, port_text = address.split(":")
        if not host:
            raise ValueError(f"Malformed router address {address!r}")
    else:
        # bare hostname, IPv4 or unbracketed IPv6
        return address, DEFAULT_PORT

    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in router address {address!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in router address {address!r}")
    return host, port


class Client:
    """A connection to one router, authenticated with ``connect``."""

    def __init__(
        self,
        address: str,
        connect_timeout: float | None = CONNECT_TIMEOUT_S,
    ) -> None:
        self.address = address
        self._host, self._port = parse_address(address)
        self._connect_timeout = connect_timeout
        self.user = ""
        self._password = ""
        self._ready = False
        self._closed = False
        self._connection: TCPConnection | None = None

    @property
    def ready(self) -> bool:
        """True after a successful login and until ``close``."""
        return self._ready

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def connect(self, user: str, password: str) -> None:
        """Dial the router and log in with challenge-response.

        On any failure the connection is released and the client is
        closed.

        Raises:
            TransportError: If the router cannot be reached.
            ProtocolError: If the router sends no usable challenge.
            AuthenticationError: If the router rejects the credentials.
        """
        if self._closed:
            raise ClientClosedError("Client is closed")
        if self._connection is not None:
            raise ProtocolError("Client is already connected")

        self.user = user
        self._password = password
        try:
            connection = TCPConnection(
                self._host, self._port, connect_timeout=self._connect_timeout
            )
            connection.open()
            self._connection = connection
            self._login(user, password)
        except RouterOSError:
            self.close()
            raise

        self._ready = True
        logger.info("Logged in to %s as %s", self.address, user)

    def _login(self, user: str, password: str) -> None:
        self._send(login_words())
        reply = self._receive()
        try:
            challenge = reply.get_pair_val("ret")
        except NotFoundError:
            raise ProtocolError("Didn't get challenge from router") from None

        response = login_response(password, challenge)
        self._send(login_response_words(user, response))
        reply = self._receive()
        if reply.pairs:
            detail = ", ".join(f"{p.key}={p.value}" for p in reply.pairs)
            raise AuthenticationError(f"Unexpected result on login: {detail}")

    def close(self) -> None:
        """Close the connection. The client cannot be reused."""
        if self._closed:
            return
        self._closed = True
        self._ready = False
        if self._connection is not None:
            self._connection.close()
        self._connection = None

    def call(self, command: str, params: list[Pair] | None = None) -> Reply:
        """Run a command with ``=key=value`` parameters."""
        self._send(call_words(command, params))
        return self._receive()

    def query(self, command: str, query: Query | None = None) -> Reply:
        """Run a command with a property list and filters."""
        self._send(query_words(command, query))
        return self._receive()

    def listen(
        self,
        command: str,
        query: Query | None = None,
        stop: threading.Event | None = None,
    ) -> Iterator[Reply]:
        """Send a streaming command and return an iterator over its replies.

        The command is sent immediately. Iteration blocks on the socket
        and ends when the router sends ``!done`` or ``stop`` is set; to
        interrupt a blocked read, ``close`` the client from another thread.
        """
        self._send(listen_words(command, query))
        return iter_replies(self._read_word, stop=stop)

    def keep_alive_call(
        self,
        command: str,
        query: Query | None,
        iterator: PairIterator,
        stop: threading.Event | None = None,
    ) -> None:
        """Run a streaming command, handing each reply's records to ``iterator``.

        When the stream fails ``iterator`` is called once with the error,
        which is then raised.
        """
        try:
            for reply in self.listen(command, query, stop=stop):
                iterator(reply.sub_pairs, None)
        except RouterOSError as e:
            iterator([], e)
            raise

    def _require_connection(self) -> TCPConnection:
        if self._closed:
            raise ClientClosedError("Client is closed")
        if self._connection is None:
            raise TransportError("Not connected to router")
        return self._connection

    def _send(self, words: list[str]) -> None:
        self._require_connection().write_sentence(words)

    def _read_word(self) -> str:
        return self._require_connection().read_word()

    def _receive(self) -> Reply:
        return receive(self._read_word)
