"""Targeted bencode scanning for torrent files and tracker responses.

This is deliberately not a bencode decoder. Field lookups are shallow
pattern searches for ``<len>:<key>`` followed by a string or integer
literal, and ``locate_value_end`` walks exactly one value so that callers
can slice raw byte spans (the info dictionary) without re-encoding them.
"""

from __future__ import annotations

import re

from ratiomaster.exceptions import MalformedBencodeError

# Torrent files nest three or four levels deep; anything far beyond that is
# hostile input.
MAX_DEPTH = 64

_DIGITS = b"0123456789"


def locate_value_end(data: bytes, start: int, _depth: int = 0) -> int:
    """Return the offset just past the bencoded value beginning at ``start``.

    Args:
        data: Raw bencoded bytes
        start: Offset of the value's first byte (``d``, ``l``, ``i`` or a digit)

    Returns:
        Offset of the first byte after the value

    Raises:
        MalformedBencodeError: If the value is truncated or starts with an
            unexpected byte

    """
    if _depth > MAX_DEPTH:
        raise MalformedBencodeError("Nesting too deep", start)
    if start >= len(data):
        raise MalformedBencodeError("Unexpected end of data", start)

    token = data[start : start + 1]

    if token in (b"d", b"l"):
        pos = start + 1
        while True:
            if pos >= len(data):
                raise MalformedBencodeError("Unterminated container", start)
            if data[pos : pos + 1] == b"e":
                return pos + 1
            pos = locate_value_end(data, pos, _depth + 1)

    if token == b"i":
        return _skip_integer(data, start)

    if token in _DIGITS:
        return _skip_string(data, start)

    raise MalformedBencodeError(f"Unexpected token {token!r}", start)


def _skip_integer(data: bytes, start: int) -> int:
    end = data.find(b"e", start + 1)
    if end == -1:
        raise MalformedBencodeError("Unterminated integer", start)
    body = data[start + 1 : end]
    if body.startswith(b"-"):
        body = body[1:]
    if not body or any(byte not in _DIGITS for byte in body):
        raise MalformedBencodeError("Invalid integer literal", start)
    return end + 1


def _skip_string(data: bytes, start: int) -> int:
    pos = start
    while pos < len(data) and data[pos] in _DIGITS:
        pos += 1
    if pos >= len(data):
        raise MalformedBencodeError("Unterminated string length", start)
    if data[pos : pos + 1] != b":":
        # Length prefixes are ASCII digits only
        raise MalformedBencodeError("Invalid string length prefix", pos)
    length = int(data[start:pos])
    end = pos + 1 + length
    if end > len(data):
        raise MalformedBencodeError("String runs past end of data", start)
    return end


def _key_pattern(key: bytes, *, with_length: bool) -> bytes:
    escaped = re.escape(key)
    if with_length:
        return str(len(key)).encode("ascii") + b":" + escaped
    return escaped


def find_string_value(
    data: bytes, key: bytes, *, with_length: bool = True
) -> bytes | None:
    """Return the string literal following the first occurrence of ``key``.

    When ``with_length`` is False the key is matched without its ``<len>:``
    prefix.
    """
    pattern = _key_pattern(key, with_length=with_length) + rb"(\d+):"
    match = re.search(pattern, data)
    if match is None:
        return None
    length = int(match.group(1))
    begin = match.end()
    return data[begin : begin + length]


def find_int_value(
    data: bytes, key: bytes, *, with_length: bool = True
) -> int | None:
    """Return the integer literal following the first occurrence of ``key``."""
    pattern = _key_pattern(key, with_length=with_length) + rb"i(\d+)e"
    match = re.search(pattern, data)
    if match is None:
        return None
    return int(match.group(1))


def sum_file_lengths(data: bytes) -> int | None:
    """Sum every ``length`` of a multi-file ``files`` list.

    Returns None when the data has no ``files`` list marker. The scan
    stops at the last ``e4:name`` following the marker, which is where the
    files list closes and the info dictionary's own name begins.
    """
    marker = data.find(b"5:filesl")
    if marker == -1:
        return None
    section = data[marker + len(b"5:filesl") :]
    boundary = section.rfind(b"e4:name")
    if boundary != -1:
        section = section[: boundary + 1]
    return sum(int(value) for value in re.findall(rb"6:lengthi(\d+)e", section))
