"""Torrent file metadata and info hash.

Metadata is scanned from the raw bytes with targeted key searches; the info
hash is taken over the exact byte span of the ``info`` dictionary as it
appears in the file, never over a re-encoded copy.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from ratiomaster.bencode import (
    find_int_value,
    find_string_value,
    locate_value_end,
    sum_file_lengths,
)
from ratiomaster.exceptions import (
    InvalidFormatError,
    MissingInfoDictError,
    TorrentFileError,
)
from ratiomaster.models import DEFAULT_PIECE_LENGTH, InfoHash, TorrentMetadata

logger = logging.getLogger(__name__)

INFO_KEY = b"4:info"

_UNRESERVED = frozenset(
    b"0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
)


def read_torrent_bytes(torrent_path: str | Path) -> bytes:
    """Read a torrent file and check its bencode signature.

    Raises:
        TorrentFileError: If the file is missing or unreadable
        InvalidFormatError: If the first byte is not a dictionary opener

    """
    path = Path(torrent_path)
    if not path.is_file():
        msg = f"Torrent file does not exist: {path}"
        raise TorrentFileError(msg)

    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        msg = f"Torrent file is not readable: {path}"
        raise TorrentFileError(msg, {"error": str(e)}) from e

    if not data.startswith(b"d"):
        msg = f"File does not appear to be a valid torrent file: {path}"
        raise InvalidFormatError(msg)

    return data


def _text(raw: bytes | None) -> str:
    if raw is None:
        return ""
    return raw.decode("utf-8", errors="replace")


def fallback_name(torrent_path: str | Path) -> str:
    """Display name derived from the file name."""
    name = Path(torrent_path).name
    if name.endswith(".torrent"):
        name = name[: -len(".torrent")]
    return name


def extract_metadata(data: bytes, torrent_path: str | Path) -> TorrentMetadata:
    """Scan display and sizing fields out of raw torrent bytes."""
    name = _text(find_string_value(data, b"name")) or fallback_name(torrent_path)

    # A files list marks a multi-file torrent even if a stray length exists
    total_length = sum_file_lengths(data)
    if total_length is None:
        total_length = find_int_value(data, b"length") or 0

    piece_length = (
        find_int_value(data, b"piece length", with_length=False)
        or DEFAULT_PIECE_LENGTH
    )

    metadata = TorrentMetadata(
        name=name,
        total_length=total_length,
        piece_length=piece_length,
        tracker_url=_text(find_string_value(data, b"announce", with_length=False)),
        comment=_text(find_string_value(data, b"comment", with_length=False)),
    )

    logger.debug("Name: %s", metadata.name)
    logger.debug("Size: %d bytes", metadata.total_length)
    logger.debug("Pieces: %s", metadata.piece_count or "?")
    logger.debug("Tracker: %s", metadata.tracker_url)
    return metadata


def parse_torrent(torrent_path: str | Path) -> TorrentMetadata:
    """Read a torrent file and extract its metadata."""
    logger.debug("Parsing torrent file: %s", torrent_path)
    return extract_metadata(read_torrent_bytes(torrent_path), torrent_path)


def info_span(data: bytes) -> tuple[int, int]:
    """Return the ``[start, end)`` byte span of the info dictionary's value.

    Only keys of the top-level dictionary are considered, so a ``4:info``
    inside a comment or URL never matches.

    Raises:
        MissingInfoDictError: If the top-level dictionary has no ``info`` key
        MalformedBencodeError: If a value cannot be walked

    """
    if data[:1] == b"d":
        pos = 1
        while pos < len(data) and data[pos : pos + 1] != b"e":
            key_end = locate_value_end(data, pos)
            value_end = locate_value_end(data, key_end)
            if data[pos:key_end] == INFO_KEY:
                return key_end, value_end
            pos = value_end
    msg = "Torrent has no info dictionary"
    raise MissingInfoDictError(msg)


def info_hash_from_bytes(data: bytes) -> InfoHash:
    """Hash the raw info dictionary span of already-read torrent bytes."""
    start, end = info_span(data)
    digest = hashlib.sha1(data[start:end]).digest()  # nosec B324 - SHA-1 required by BitTorrent protocol (BEP 3)
    return InfoHash(digest=digest)


def compute_info_hash(torrent_path: str | Path) -> InfoHash:
    """Compute the info hash of a torrent file."""
    info_hash = info_hash_from_bytes(read_torrent_bytes(torrent_path))
    logger.debug("Info hash: %s", info_hash.hex)
    return info_hash


def tracker_quote(raw: bytes) -> str:
    """Percent-encode bytes for an announce query string.

    Only ASCII letters and digits pass through; every other byte becomes an
    uppercase ``%XX`` escape. This is stricter than ``urllib.parse.quote``,
    which leaves ``-._~`` unescaped.
    """
    return "".join(
        chr(byte) if byte in _UNRESERVED else f"%{byte:02X}" for byte in raw
    )
