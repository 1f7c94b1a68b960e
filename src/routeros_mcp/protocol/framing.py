"""Word codec for the RouterOS API wire format.

Every word is sent as a variable-length size prefix followed by the raw
word bytes. The high bits of the first prefix byte select its width::

    +------------------+-------+-----------------------------+
    | Length range     | Bytes | First byte                  |
    +------------------+-------+-----------------------------+
    | 0x00 - 0x7F      |   1   | 0xxxxxxx                    |
    | 0x80 - 0x3FFF    |   2   | 10xxxxxx                    |
    | 0x4000 - 0x1FFFFF|   3   | 110xxxxx                    |
    | up to 0xFFFFFFF  |   4   | 1110xxxx                    |
    | up to 0xFFFFFFFF |   5   | 11110000 + 4 bytes length   |
    +------------------+-------+-----------------------------+

A sentence is a run of words closed by the empty word (a single 0x00).

Word bodies are UTF-8. Bytes that are not valid UTF-8 (comments typed in
a legacy code page, for instance) decode to surrogate escapes and encode
back to the same bytes.
"""

from __future__ import annotations

import struct
from typing import Callable, Iterable

from ..errors import FramingError, TransportError

MAX_WORD_LENGTH = 0xFFFFFFFF

# Reads exactly n bytes, or fewer if the stream ended.
ReadExact = Callable[[int], bytes]


def encode_length(length: int) -> bytes:
    """Encode a word length as its 1-5 byte prefix."""
    if length < 0 or length > MAX_WORD_LENGTH:
        raise ValueError(f"Word length out of range: {length}")
    if length < 0x80:
        return bytes([length])
    if length < 0x4000:
        return struct.pack(">H", length | 0x8000)
    if length < 0x200000:
        return struct.pack(">I", length | 0xC00000)[1:]
    if length < 0x10000000:
        return struct.pack(">I", length | 0xE0000000)
    return b"\xF0" + struct.pack(">I", length)


def prefix_width(first: int) -> int:
    """Return the total prefix width announced by its first byte."""
    if first < 0x80:
        return 1
    if first < 0xC0:
        return 2
    if first < 0xE0:
        return 3
    if first < 0xF0:
        return 4
    if first == 0xF0:
        return 5
    raise FramingError(f"Invalid length prefix byte 0x{first:02X}")


def _length_from_prefix(prefix: bytes) -> int:
    width = len(prefix)
    if width == 1:
        return prefix[0]
    if width == 2:
        return struct.unpack(">H", prefix)[0] & 0x3FFF
    if width == 3:
        return struct.unpack(">I", b"\x00" + prefix)[0] & 0x1FFFFF
    if width == 4:
        return struct.unpack(">I", prefix)[0] & 0x0FFFFFFF
    return struct.unpack(">I", prefix[1:])[0]


def decode_length(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a length prefix from a buffer.

    Returns:
        ``(length, new_offset)`` where ``new_offset`` points at the word body.
    """
    if offset >= len(data):
        raise FramingError("Missing length prefix")
    width = prefix_width(data[offset])
    prefix = data[offset : offset + width]
    if len(prefix) != width:
        raise FramingError(
            f"Truncated length prefix: expected {width} bytes, got {len(prefix)}"
        )
    return _length_from_prefix(prefix), offset + width


def read_length(read_exact: ReadExact) -> int:
    """Read a length prefix from a stream."""
    first = read_exact(1)
    if not first:
        raise TransportError("Connection closed by router")
    width = prefix_width(first[0])
    rest = read_exact(width - 1) if width > 1 else b""
    if len(rest) != width - 1:
        raise FramingError(
            f"Truncated length prefix: expected {width} bytes, got {1 + len(rest)}"
        )
    return _length_from_prefix(first + rest)


def encode_word(word: str) -> bytes:
    """Encode one word as prefix + UTF-8 body."""
    data = word.encode("utf-8", errors="surrogateescape")
    return encode_length(len(data)) + data


def encode_sentence(words: Iterable[str]) -> bytes:
    """Encode words back to back. Include ``""`` to close the sentence."""
    return b"".join(encode_word(w) for w in words)


def decode_word(data: bytes, offset: int = 0) -> tuple[str, int]:
    """Decode one word from a buffer, returning ``(word, new_offset)``."""
    length, offset = decode_length(data, offset)
    body = data[offset : offset + length]
    if len(body) != length:
        raise FramingError(
            f"Incorrect number of bytes read: expected {length}, got {len(body)}"
        )
    return body.decode("utf-8", errors="surrogateescape"), offset + length


def read_word(read_exact: ReadExact) -> str:
    """Read one word from a stream.

    Raises:
        TransportError: If the stream ended before the prefix.
        FramingError: If the stream ended inside the prefix or body.
    """
    length = read_length(read_exact)
    body = read_exact(length) if length else b""
    if len(body) != length:
        raise FramingError(
            f"Incorrect number of bytes read: expected {length}, got {len(body)}"
        )
    return body.decode("utf-8", errors="surrogateescape")
