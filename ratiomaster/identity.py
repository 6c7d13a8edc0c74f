"""Session identity generation.

The peer id, session key and listen port mimic a uTorrent 3.5.5 client and
are generated once per run from a cryptographically secure source.
"""

from __future__ import annotations

import secrets

from ratiomaster.models import SessionIdentity

# Azureus-style client signature: uTorrent 3.5.5
PEER_ID_PREFIX = b"-UT3550-"
# Fixed bytes uTorrent 3.x places after its signature
PEER_ID_MARKER = b"\xd3\x01"
PEER_ID_LENGTH = 20

USER_AGENT = "uTorrent/3550(45852)"

PORT_RANGE = (10000, 65000)


def generate_peer_id() -> bytes:
    """Return a fresh 20-byte peer id."""
    random_length = PEER_ID_LENGTH - len(PEER_ID_PREFIX) - len(PEER_ID_MARKER)
    return PEER_ID_PREFIX + PEER_ID_MARKER + secrets.token_bytes(random_length)


def generate_session_key() -> str:
    """Return 4 random bytes as 8 uppercase hex characters."""
    return secrets.token_bytes(4).hex().upper()


def generate_listen_port() -> int:
    """Return a uniformly random port within ``PORT_RANGE``."""
    low, high = PORT_RANGE
    return low + secrets.randbelow(high - low + 1)


def generate_identity(listen_port: int | None = None) -> SessionIdentity:
    """Generate the identity for one announce session.

    Args:
        listen_port: Fixed port to announce instead of a random one

    """
    return SessionIdentity(
        peer_id=generate_peer_id(),
        session_key=generate_session_key(),
        listen_port=listen_port if listen_port is not None else generate_listen_port(),
    )
