"""Word builders for API commands and the login challenge response.

Each builder returns the complete sentence as a list of words, ending
with the empty terminator word.
"""

from __future__ import annotations

import hashlib

from ..errors import ProtocolError
from ..models.reply import FILTER_OPS, Pair, Query

LOGIN = "/login"
PROPLIST_KEY = ".proplist"


def attribute_word(key: str, value: str) -> str:
    return f"={key}={value}"


def proplist_word(names: list[str]) -> str:
    return attribute_word(PROPLIST_KEY, ",".join(names))


def filter_word(pair: Pair) -> str:
    """Build a ``?<op><key>=<value>`` query word."""
    if pair.op not in FILTER_OPS:
        raise ValueError(
            f"Unknown filter operator {pair.op!r}. Valid: {list(FILTER_OPS)}"
        )
    return f"?{pair.op}{pair.key}={pair.value}"


def combine_word(op: str) -> str:
    """Build the ``?#`` word that combines the preceding filters."""
    return f"?#{op}"


def call_words(command: str, params: list[Pair] | None = None) -> list[str]:
    """Build a command sentence with ``=key=value`` parameters."""
    words = [command]
    for pair in params or []:
        words.append(attribute_word(pair.key, pair.value))
    words.append("")
    return words


def query_words(command: str, query: Query | None = None) -> list[str]:
    """Build a query sentence.

    The property list goes right after the command, then the filters,
    then the combining operator (only when filters are present).
    """
    query = query or Query()
    words = [command]
    if query.proplist:
        words.append(proplist_word(query.proplist))
    if query.pairs:
        words.extend(filter_word(p) for p in query.pairs)
        if query.op:
            words.append(combine_word(query.op))
    words.append("")
    return words


def listen_words(command: str, query: Query | None = None) -> list[str]:
    """Build the sentence for a streaming command.

    Streaming commands take the same filters as queries, combining
    operator included.
    """
    return query_words(command, query)


def login_words() -> list[str]:
    """First login round: ``/login`` with no parameters."""
    return call_words(LOGIN)


def login_response_words(user: str, response: str) -> list[str]:
    """Second login round carrying the user name and challenge response."""
    return call_words(
        LOGIN,
        [Pair(key="name", value=user), Pair(key="response", value=response)],
    )


def login_response(password: str, challenge_hex: str) -> str:
    """Compute the ``00``-prefixed MD5 response to a login challenge.

    The digest covers a zero byte, the UTF-8 password and the raw
    challenge bytes.
    """
    try:
        challenge = bytes.fromhex(challenge_hex)
    except ValueError as e:
        raise ProtocolError(f"Malformed login challenge {challenge_hex!r}") from e
    h = hashlib.md5()
    h.update(b"\x00")
    h.update(password.encode("utf-8"))
    h.update(challenge)
    return "00" + h.hexdigest()
