"""MCP server entry point for RouterOS devices.

Exposes the API client as tools, resources, and prompts via the Model
Context Protocol using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from .client import Client
from .errors import NotFoundError, RouterOSError
from .models.reply import Pair, Query, Reply

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "routeros",
    instructions="MCP server for MikroTik RouterOS devices over the binary API",
)

ENV_ADDRESS = "ROUTEROS_ADDRESS"
ENV_USER = "ROUTEROS_USER"
ENV_PASSWORD = "ROUTEROS_PASSWORD"
MAX_LISTEN_REPLIES = 100
DEFAULT_LISTEN_TIMEOUT_S = 30.0
MAX_LISTEN_TIMEOUT_S = 300.0

# Global connection state
_client: Client | None = None
_credentials: tuple[str, str, str] | None = None


def _get_client() -> Client:
    """Get the logged-in client, raising if not connected."""
    if _client is None or not _client.ready:
        raise RuntimeError(
            "Not connected to a router. Use the 'connect' tool first."
        )
    return _client


def _open_client(address: str, user: str, password: str) -> Client:
    client = Client(address)
    client.connect(user, password)
    return client


def _build_query(
    filters: list[dict[str, str]] | None,
    op: str = "",
    proplist: list[str] | None = None,
) -> Query:
    pairs = [
        Pair(key=f["key"], value=f.get("value", ""), op=f.get("op", ""))
        for f in filters or []
    ]
    return Query(pairs=pairs, op=op, proplist=list(proplist or []))


def _reply_result(reply: Reply) -> dict[str, Any]:
    return reply.to_dict()


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    address: str | None = None,
    user: str | None = None,
    password: str | None = None,
) -> dict[str, Any]:
    """Connect and log in to a RouterOS device over the API (port 8728).

    Missing arguments fall back to the ROUTEROS_ADDRESS, ROUTEROS_USER
    and ROUTEROS_PASSWORD environment variables.

    Args:
        address: Router address as host or host:port.
        user: Login name.
        password: Login password.
    """
    global _client, _credentials
    address = address or os.environ.get(ENV_ADDRESS, "")
    user = user or os.environ.get(ENV_USER, "admin")
    password = password if password is not None else os.environ.get(ENV_PASSWORD, "")
    if not address:
        return {"error": f"No address given and {ENV_ADDRESS} is not set"}

    if _client is not None and _client.ready:
        if _credentials == (address, user, password):
            return {
                "connected": True,
                "message": "Already connected",
                "address": address,
                "user": user,
            }
        _client.close()

    _client = _open_client(address, user, password)
    _credentials = (address, user, password)
    return {"connected": True, "address": address, "user": user}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection to the router."""
    global _client
    if _client is None:
        return {"disconnected": True}
    _client.close()
    _client = None
    return {"disconnected": True}


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Report whether a router session is open and for whom."""
    if _client is None or not _client.ready:
        return {"connected": False}
    return {"connected": True, "address": _client.address, "user": _client.user}


# ─── COMMAND TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def call(command: str, params: dict[str, str] | None = None) -> dict[str, Any]:
    """Run an API command with attribute parameters.

    Args:
        command: Command path, e.g. '/system/identity/print'.
        params: Attributes sent as =key=value words, e.g. {"name": "edge-1"}.
    """
    client = _get_client()
    pairs = [Pair(key=k, value=str(v)) for k, v in (params or {}).items()]
    return _reply_result(client.call(command, pairs))


@mcp.tool()
def query(
    command: str,
    filters: list[dict[str, str]] | None = None,
    op: str = "",
    proplist: list[str] | None = None,
) -> dict[str, Any]:
    """Run a print-style command with filters and a property list.

    Args:
        command: Command path, e.g. '/interface/print'.
        filters: Filters as {"key", "value", "op"} dicts; op is one of
                 "", "=", "-", "<", ">".
        op: Operator combining the filters, e.g. '|' or '&'.
        proplist: Property names to return, e.g. ["name", "type"].
    """
    client = _get_client()
    try:
        q = _build_query(filters, op, proplist)
        reply = client.query(command, q)
    except (KeyError, ValueError) as e:
        return {"error": f"Invalid filter: {e}"}
    return _reply_result(reply)


@mcp.tool()
def listen(
    command: str,
    max_replies: int = 10,
    filters: list[dict[str, str]] | None = None,
    proplist: list[str] | None = None,
    timeout_s: float = DEFAULT_LISTEN_TIMEOUT_S,
) -> dict[str, Any]:
    """Collect updates from a streaming command such as '/interface/listen'.

    A separate session is opened for the stream and closed once
    ``max_replies`` updates have arrived or ``timeout_s`` has passed,
    so the main session stays usable. On timeout the updates collected
    so far are returned.

    Args:
        command: Streaming command path.
        max_replies: Number of updates to collect (1-100).
        filters: Filters as {"key", "value", "op"} dicts.
        proplist: Property names to return.
        timeout_s: Seconds to wait for updates (up to 300).
    """
    if not 1 <= max_replies <= MAX_LISTEN_REPLIES:
        return {"error": f"max_replies must be 1-{MAX_LISTEN_REPLIES}"}
    if not 0 < timeout_s <= MAX_LISTEN_TIMEOUT_S:
        return {"error": f"timeout_s must be above 0 and at most {MAX_LISTEN_TIMEOUT_S:g}"}
    _get_client()
    address, user, password = _credentials

    updates: list[list[dict[str, str]]] = []
    stream = _open_client(address, user, password)
    expired = threading.Event()

    def expire() -> None:
        expired.set()
        stream.close()

    # Closing the session is the only way to wake a blocked stream read
    timer = threading.Timer(timeout_s, expire)
    timer.daemon = True
    timer.start()
    try:
        for reply in stream.listen(command, _build_query(filters, "", proplist)):
            updates.append(reply.sub_pairs)
            if len(updates) >= max_replies:
                break
    except RouterOSError:
        if not expired.is_set():
            raise
    finally:
        timer.cancel()
        timer.join()
        stream.close()

    logger.info("Collected %d updates from %s", len(updates), command)
    return {"command": command, "updates": updates, "timed_out": expired.is_set()}


@mcp.tool()
def get_value(
    command: str,
    key: str,
    params: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Run a command and return one attribute of its reply.

    Args:
        command: Command path, e.g. '/system/resource/print'.
        key: Attribute name to pick from the reply.
        params: Optional command attributes.
    """
    client = _get_client()
    pairs = [Pair(key=k, value=str(v)) for k, v in (params or {}).items()]
    reply = client.call(command, pairs)
    try:
        return {"key": key, "value": reply.get_pair_val(key)}
    except NotFoundError as e:
        return {"error": str(e)}


@mcp.tool()
def find_record(
    command: str,
    name: str,
    proplist: list[str] | None = None,
) -> dict[str, Any]:
    """Run a print command and return the row whose 'name' matches.

    Args:
        command: Command path, e.g. '/interface/print'.
        name: Value of the row's name attribute.
        proplist: Property names to return; 'name' is always included.
    """
    client = _get_client()
    props = list(proplist or [])
    if props and "name" not in props:
        props.append("name")
    reply = client.query(command, Query(proplist=props))
    try:
        return {"record": reply.get_sub_pair_by_name(name)}
    except NotFoundError as e:
        return {"error": str(e)}


# ─── RESOURCES ───────────────────────────────────────────────────────

@mcp.resource("routeros://status")
def status_resource() -> dict[str, Any]:
    """Current session status."""
    return get_status()


# ─── PROMPTS ─────────────────────────────────────────────────────────

@mcp.prompt()
def inspect_interfaces() -> str:
    """Summarize interface state on the connected router."""
    return """Use the query tool on '/interface/print' with
proplist ["name", "type", "running", "disabled"].
Report:
- Interfaces that are enabled but not running
- Disabled interfaces
- A count of interfaces per type

Use find_record to fetch full details for any interface that looks wrong."""


@mcp.prompt()
def watch_interface(name: str) -> str:
    """Watch traffic or state changes on one interface.

    Args:
        name: Interface name, e.g. 'ether1'.
    """
    return f"""Use the listen tool on '/interface/listen' with a filter
{{"key": "name", "value": "{name}"}}, max_replies 5 and timeout_s 60.
If it times out with no updates, report that the interface was quiet.
Describe each state change reported for {name}."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
