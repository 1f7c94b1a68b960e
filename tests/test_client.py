"""Tests for the API client against a scripted router on a socket pair."""

from __future__ import annotations

import itertools
import socket
import threading

import pytest

from routeros_mcp.client import Client, parse_address
from routeros_mcp.errors import (
    AuthenticationError,
    ClientClosedError,
    ProtocolError,
    RouterOSError,
    TransportError,
)
from routeros_mcp.models.reply import Pair, Query
from routeros_mcp.protocol.commands import login_response
from routeros_mcp.protocol.framing import encode_sentence, read_word
from routeros_mcp.transport import tcp_connection

CHALLENGE = "a4f2c7e81b3d90565e0c1f2a3b4c5d6e"


class FakeRouter:
    """The router end of a socket pair.

    Replies are queued up front; the client end is handed to the client
    in place of a dialed TCP socket.
    """

    def __init__(self, monkeypatch):
        self.sock, self.client_sock = socket.socketpair()
        self.sock.settimeout(2.0)
        self.dialed = []
        monkeypatch.setattr(tcp_connection.socket, "create_connection", self._dial)

    def _dial(self, address, timeout=None):
        self.dialed.append(address)
        return self.client_sock

    def reply(self, *sentences):
        for words in sentences:
            self.sock.sendall(encode_sentence(list(words) + [""]))

    def hang_up(self):
        self.sock.shutdown(socket.SHUT_WR)

    def _read_exact(self, size):
        buf = b""
        while len(buf) < size:
            chunk = self.sock.recv(size - len(buf))
            if not chunk:
                break
            buf += chunk
        return buf

    def sent_sentence(self):
        """Read one sentence written by the client, without its terminator."""
        words = []
        while True:
            word = read_word(self._read_exact)
            if word == "":
                return words
            words.append(word)

    def close(self):
        self.sock.close()


@pytest.fixture
def router(monkeypatch):
    r = FakeRouter(monkeypatch)
    yield r
    r.close()


@pytest.fixture
def client(router):
    """A client that has completed the login handshake."""
    router.reply(["!done", f"=ret={CHALLENGE}"], ["!done"])
    c = Client("192.168.88.1")
    c.connect("admin", "secret")
    router.sent_sentence()
    router.sent_sentence()
    yield c
    c.close()


# ─── ADDRESSES ───────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "address, expected",
    [
        ("192.168.88.1:8729", ("192.168.88.1", 8729)),
        ("192.168.88.1", ("192.168.88.1", 8728)),
        ("router.lan", ("router.lan", 8728)),
        ("[fe80::1]:8728", ("fe80::1", 8728)),
        ("[fe80::1]", ("fe80::1", 8728)),
        ("fe80::1", ("fe80::1", 8728)),
    ],
)
def test_parse_address(address, expected):
    assert parse_address(address) == expected


@pytest.mark.parametrize("address", ["", ":8728", "host:port", "host:70000", "[fe80::1"])
def test_parse_address_invalid(address):
    with pytest.raises(ValueError):
        parse_address(address)


# ─── LOGIN ───────────────────────────────────────────────────────────

def test_connect_handshake(router):
    router.reply(["!done", f"=ret={CHALLENGE}"], ["!done"])
    c = Client("10.0.0.1:8728")
    assert not c.ready

    c.connect("admin", "secret")

    assert c.ready
    assert router.dialed == [("10.0.0.1", 8728)]
    assert router.sent_sentence() == ["/login"]
    assert router.sent_sentence() == [
        "/login",
        "=name=admin",
        f"=response={login_response('secret', CHALLENGE)}",
    ]
    c.close()


def test_connect_missing_challenge(router):
    router.reply(["!done"])
    c = Client("10.0.0.1")
    with pytest.raises(ProtocolError, match="challenge"):
        c.connect("admin", "secret")
    assert not c.ready
    assert c.closed


def test_connect_rejected(router):
    router.reply(
        ["!done", f"=ret={CHALLENGE}"],
        ["!trap", "=message=invalid user name or password (6)"],
        ["!done"],
    )
    c = Client("10.0.0.1")
    with pytest.raises(AuthenticationError) as exc:
        c.connect("admin", "wrong")
    assert "invalid user name or password" in str(exc.value)
    assert not c.ready
    with pytest.raises(ClientClosedError):
        c.call("/system/identity/print")


def test_connect_unreachable(monkeypatch):
    def refuse(address, timeout=None):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(tcp_connection.socket, "create_connection", refuse)
    c = Client("10.0.0.1")
    with pytest.raises(TransportError):
        c.connect("admin", "secret")
    assert not c.ready
    assert c.closed
    with pytest.raises(ClientClosedError):
        c.connect("admin", "secret")


# ─── COMMANDS ────────────────────────────────────────────────────────

def test_call(client, router):
    router.reply(["!done"])
    reply = client.call("/system/identity/set", [Pair("name", "edge-1")])
    assert reply.pairs == []
    assert router.sent_sentence() == ["/system/identity/set", "=name=edge-1"]


def test_query(client, router):
    router.reply(
        ["!re", "=name=ether1", "=type=ether"],
        ["!re", "=name=ether2", "=type=ether"],
        ["!done"],
    )
    reply = client.query(
        "/interface/print",
        Query(pairs=[Pair("type", "ether")], proplist=["name", "type"]),
    )
    assert reply.get_sub_pair_by_name("ether2") == {"name": "ether2", "type": "ether"}
    assert router.sent_sentence() == [
        "/interface/print",
        "=.proplist=name,type",
        "?type=ether",
    ]


def test_commands_in_sequence(client, router):
    """Each one-shot command consumes exactly its own reply."""
    router.reply(["!done", "=ret=first"], ["!done", "=ret=second"])
    assert client.call("/one").get_pair_val("ret") == "first"
    assert client.call("/two").get_pair_val("ret") == "second"


def test_listen(client, router):
    router.reply(["!re", "=name=ether1", "=running=true"], ["!re", "=name=ether1", "=running=false"])
    updates = list(itertools.islice(client.listen("/interface/listen"), 2))
    assert [u.sub_pairs for u in updates] == [
        [{"name": "ether1", "running": "true"}],
        [{"name": "ether1", "running": "false"}],
    ]
    assert router.sent_sentence() == ["/interface/listen"]


def test_listen_sends_combining_op(client, router):
    router.reply(["!done"])
    q = Query(pairs=[Pair("name", "ether1"), Pair("name", "ether2")], op="|")
    assert list(client.listen("/interface/listen", q)) == []
    assert router.sent_sentence() == [
        "/interface/listen",
        "?name=ether1",
        "?name=ether2",
        "?#|",
    ]


def test_keep_alive_call_until_hang_up(client, router):
    router.reply(["!re", "=seq=1"], ["!re", "=seq=2"])
    router.hang_up()
    calls = []

    with pytest.raises(TransportError):
        client.keep_alive_call("/log/listen", Query(), lambda items, err: calls.append((items, err)))

    assert calls[0] == ([{"seq": "1"}], None)
    assert calls[1] == ([{"seq": "2"}], None)
    assert calls[2][0] == []
    assert isinstance(calls[2][1], TransportError)


def test_close_interrupts_listen(client, router):
    """Closing from another thread makes a blocked stream read fail."""
    stream = client.listen("/interface/listen")
    timer = threading.Timer(0.2, client.close)
    timer.start()
    try:
        with pytest.raises(RouterOSError):
            next(stream)
    finally:
        timer.join()
    assert client.closed


# ─── LIFECYCLE ───────────────────────────────────────────────────────

def test_call_before_connect():
    c = Client("10.0.0.1")
    with pytest.raises(TransportError):
        c.call("/system/identity/print")


def test_use_after_close(client):
    client.close()
    assert not client.ready
    with pytest.raises(ClientClosedError):
        client.call("/system/identity/print")
    with pytest.raises(ClientClosedError):
        client.connect("admin", "secret")


def test_close_twice(client):
    client.close()
    client.close()
    assert client.closed


def test_context_manager(router):
    router.reply(["!done", f"=ret={CHALLENGE}"], ["!done"])
    with Client("10.0.0.1") as c:
        c.connect("admin", "secret")
        assert c.ready
    assert c.closed
