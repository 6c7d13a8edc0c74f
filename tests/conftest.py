"""Pytest configuration and shared fixtures for ratio-master tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from ratiomaster.config import set_config
from ratiomaster.models import Config
from ratiomaster.utils.shutdown import clear_shutdown


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("bencode", "marks tests as bencode scanner tests"),
        ("torrent", "marks tests as torrent metadata tests"),
        ("identity", "marks tests as session identity tests"),
        ("tracker", "marks tests as tracker tests"),
        ("session", "marks tests as session lifecycle tests"),
        ("responder", "marks tests as handshake responder tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        if logger_name.startswith("ratiomaster"):
            logger.propagate = True
            logger.setLevel(logging.NOTSET)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep user config files and RATIOMASTER_* variables out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("RATIOMASTER_"):
            monkeypatch.delenv(name)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    set_config(Config())
    clear_shutdown()
    yield
    clear_shutdown()


def bstr(value: bytes | str) -> bytes:
    """Bencode a byte string."""
    if isinstance(value, str):
        value = value.encode()
    return str(len(value)).encode() + b":" + value


def bint(value: int) -> bytes:
    """Bencode an integer."""
    return b"i" + str(value).encode() + b"e"


def blist(*items: bytes) -> bytes:
    """Bencode a list of already encoded items."""
    return b"l" + b"".join(items) + b"e"


def bdict(**pairs: bytes) -> bytes:
    """Bencode a dictionary of already encoded values with sorted keys.

    Keyword names use ``_`` for spaces and ``__`` for dashes.
    """
    out = b"d"
    keys = {k.replace("__", "-").replace("_", " "): v for k, v in pairs.items()}
    for key in sorted(keys):
        out += bstr(key) + keys[key]
    return out + b"e"


def simple_info(**overrides: bytes) -> bytes:
    fields = {
        "length": bint(104857600),
        "name": bstr("Test-File"),
        "piece_length": bint(262144),
        "pieces": bstr(b"a" * 20),
    }
    fields.update(overrides)
    return bdict(**fields)


def simple_torrent(comment: str = "Test torrent", info: bytes | None = None) -> bytes:
    return bdict(
        announce=bstr("http://tracker.example.com/announce"),
        comment=bstr(comment),
        info=info if info is not None else simple_info(),
    )


def multifile_torrent() -> bytes:
    files = blist(
        bdict(length=bint(52428800), path=blist(bstr("file1.txt"))),
        bdict(length=bint(26214400), path=blist(bstr("subdir"), bstr("file2.txt"))),
    )
    return bdict(
        announce=bstr("http://tracker.example.com/announce"),
        info=bdict(
            files=files,
            name=bstr("Multi-File-Torrent"),
            piece_length=bint(524288),
            pieces=bstr(b"b" * 20),
        ),
    )


def minimal_torrent() -> bytes:
    return bdict(
        announce=bstr("http://example.com/announce"),
        info=bdict(
            length=bint(1024),
            name=bstr("tiny"),
            piece_length=bint(16384),
            pieces=bstr(b"c" * 20),
        ),
    )


def large_torrent() -> bytes:
    return bdict(
        announce=bstr("http://private-tracker.example.com/announce"),
        announce__list=blist(
            blist(bstr("http://private-tracker.example.com/announce")),
            blist(bstr("http://backup-tracker.example.com/announce")),
        ),
        comment=bstr("A large file for testing"),
        created_by=bstr("ratio-master-tests"),
        encoding=bstr("UTF-8"),
        info=bdict(
            length=bint(10737418240),
            name=bstr("Big-File-10Go"),
            piece_length=bint(4194304),
            pieces=bstr(b"d" * 20),
        ),
    )


@pytest.fixture
def write_torrent(tmp_path):
    """Write raw bytes to a .torrent file and return its path."""

    def _write(data: bytes, name: str = "test.torrent") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def simple_torrent_file(write_torrent) -> Path:
    return write_torrent(simple_torrent(), "simple.torrent")


@pytest.fixture
def multifile_torrent_file(write_torrent) -> Path:
    return write_torrent(multifile_torrent(), "multifile.torrent")


@pytest.fixture
def minimal_torrent_file(write_torrent) -> Path:
    return write_torrent(minimal_torrent(), "minimal.torrent")


@pytest.fixture
def large_torrent_file(write_torrent) -> Path:
    return write_torrent(large_torrent(), "large.torrent")


@pytest.fixture
def invalid_torrent_file(write_torrent) -> Path:
    return write_torrent(b"This is not a torrent file\n", "invalid.torrent")
