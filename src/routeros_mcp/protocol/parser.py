"""Sentence parsing: rebuilds replies from a stream of decoded words."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from ..errors import ProtocolError
from ..models.reply import Pair, Reply

DONE = "!done"
RECORD = "!re"


@dataclass(frozen=True)
class Attribute:
    """A decoded ``=key=value`` word.

    ``value`` is ``None`` for the ``=key`` form, which carries no value.
    """

    key: str
    value: str | None = None

    @property
    def text(self) -> str:
        return self.value if self.value is not None else ""


def split_word(word: str) -> Attribute | None:
    """Split an attribute word on its first two ``=``.

    Returns ``None`` for words without ``=`` (reply markers such as
    ``!trap``). The segment before the first ``=`` is discarded.
    """
    if "=" not in word:
        return None
    parts = word.split("=", 2)
    if len(parts) == 3:
        return Attribute(key=parts[1], value=parts[2])
    return Attribute(key=parts[1])


class SentenceParser:
    """Incremental reply builder fed one word at a time.

    In one-shot mode a reply completes on the empty word that closes the
    ``!done`` sentence; empty words seen earlier only close intermediate
    sentences. In continuous mode every empty word completes a reply and
    the parser starts over; a ``!done`` sentence ends the stream.
    """

    def __init__(self, continuous: bool = False) -> None:
        self.continuous = continuous
        self.finished = False
        self._reset()

    def _reset(self) -> None:
        self._pairs: list[Pair] = []
        self._records: list[dict[str, str]] = []
        self._record: dict[str, str] = {}
        self._grouped = False
        self._done = False

    @property
    def done(self) -> bool:
        """True once ``!done`` has been seen for the reply in progress."""
        return self._done

    def feed(self, word: str) -> Reply | None:
        """Consume one word, returning a Reply when one completes."""
        if self.finished:
            raise ProtocolError("Stream already finished")

        if word == "":
            if self.continuous and self._done:
                self.finished = True
                self._reset()
                return None
            if self.continuous or self._done:
                return self.finish()
            return None

        if word == DONE:
            self._done = True
            return None

        if word == RECORD:
            if self._record:
                self._records.append(self._record)
                self._record = {}
            else:
                self._grouped = True
            return None

        attr = split_word(word)
        if attr is None:
            return None
        if self._grouped:
            if attr.key:
                self._record[attr.key] = attr.text
        else:
            self._pairs.append(Pair(key=attr.key, value=attr.text))
        return None

    def finish(self) -> Reply:
        """Flush the record in progress and return the reply built so far."""
        if self._record:
            self._records.append(self._record)
        reply = Reply(pairs=self._pairs, sub_pairs=self._records)
        self._reset()
        return reply


def receive(read_word: Callable[[], str]) -> Reply:
    """Read words until a ``!done`` sentence closes and return the reply."""
    parser = SentenceParser()
    while True:
        reply = parser.feed(read_word())
        if reply is not None:
            return reply


def iter_replies(
    read_word: Callable[[], str],
    stop: threading.Event | None = None,
) -> Iterator[Reply]:
    """Yield one Reply per sentence of a streaming command.

    Runs until the router sends ``!done``, ``stop`` is set, or a read fails.
    ``stop`` is checked before each read, so a reader blocked on a silent
    stream only notices it once the next word arrives.
    """
    parser = SentenceParser(continuous=True)
    while not parser.finished:
        if stop is not None and stop.is_set():
            return
        reply = parser.feed(read_word())
        if reply is not None:
            yield reply


def parse_sentence(words: Iterable[str]) -> Reply:
    """Parse an in-memory word list in one-shot mode.

    The end of ``words`` closes a ``!done`` sentence that lacks its
    trailing empty word.
    """
    parser = SentenceParser()
    for word in words:
        reply = parser.feed(word)
        if reply is not None:
            return reply
    if parser.done:
        return parser.finish()
    raise ProtocolError("Sentence ended without !done")
