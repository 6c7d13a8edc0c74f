"""Single-shot BitTorrent handshake responder.

Answers incoming handshakes for the announced torrent on the session's
listen port so that trackers or peers probing the port see a live client.
No piece data is ever exchanged; the connection is closed right after the
handshake reply.
"""

from __future__ import annotations

import asyncio
import logging
import struct

from ratiomaster.exceptions import HandshakeError

logger = logging.getLogger(__name__)

HANDSHAKE_LENGTH = 68


class Handshake:
    """BitTorrent handshake message."""

    PROTOCOL_STRING: bytes = b"BitTorrent protocol"
    # Extension protocol bit, as uTorrent advertises
    RESERVED_BYTES: bytes = b"\x00\x00\x00\x00\x00\x10\x00\x00"

    def __init__(self, info_hash: bytes, peer_id: bytes) -> None:
        """Initialize handshake.

        Args:
            info_hash: 20-byte SHA-1 hash of info dictionary
            peer_id: 20-byte peer ID

        """
        if len(info_hash) != 20:
            msg = f"Info hash must be 20 bytes, got {len(info_hash)}"
            raise HandshakeError(msg)
        if len(peer_id) != 20:
            msg = f"Peer ID must be 20 bytes, got {len(peer_id)}"
            raise HandshakeError(msg)

        self.info_hash: bytes = info_hash
        self.peer_id: bytes = peer_id

    def encode(self) -> bytes:
        """Encode handshake to bytes.

        Format: <protocol len><protocol><reserved><info_hash><peer_id>
        Total: 1 + 19 + 8 + 20 + 20 = 68 bytes
        """
        return (
            struct.pack("B", len(self.PROTOCOL_STRING))
            + self.PROTOCOL_STRING
            + self.RESERVED_BYTES
            + self.info_hash
            + self.peer_id
        )

    @classmethod
    def decode(cls, data: bytes) -> Handshake:
        """Decode handshake from bytes.

        Raises:
            HandshakeError: If data is invalid

        """
        if len(data) != HANDSHAKE_LENGTH:
            msg = f"Handshake must be {HANDSHAKE_LENGTH} bytes, got {len(data)}"
            raise HandshakeError(msg)

        protocol_len = struct.unpack("B", data[0:1])[0]
        if protocol_len != len(cls.PROTOCOL_STRING):
            msg = f"Invalid protocol length: {protocol_len}"
            raise HandshakeError(msg)
        if data[1:20] != cls.PROTOCOL_STRING:
            msg = f"Invalid protocol string: {data[1:20]!r}"
            raise HandshakeError(msg)

        return cls(info_hash=data[28:48], peer_id=data[48:68])


class HandshakeResponder:
    """TCP listener replying to handshakes for one info hash."""

    def __init__(
        self,
        info_hash: bytes,
        peer_id: bytes,
        port: int,
        host: str = "0.0.0.0",  # nosec B104 - peers connect from anywhere
        read_timeout: float = 10.0,
    ):
        """Initialize the responder.

        Args:
            info_hash: Info hash to accept handshakes for
            peer_id: Peer id sent back in the reply
            port: Port to listen on
            host: Interface to bind
            read_timeout: Seconds to wait for a peer's handshake

        """
        self._reply = Handshake(info_hash, peer_id).encode()
        self.info_hash = info_hash
        self.host = host
        self.port = port
        self.read_timeout = read_timeout
        self.server: asyncio.Server | None = None
        self.handshakes_answered = 0

    async def start(self) -> None:
        """Start listening."""
        if self.server is not None:
            return
        self.server = await asyncio.start_server(
            self._handle_connection,
            host=self.host,
            port=self.port,
            reuse_address=True,
        )
        if self.port == 0 and self.server.sockets:
            self.port = self.server.sockets[0].getsockname()[1]
        logger.info("Handshake responder listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop listening."""
        if self.server is None:
            return
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Handshake responder close timed out")
        self.server = None
        logger.debug("Handshake responder stopped")

    async def __aenter__(self) -> HandshakeResponder:
        """Start the responder."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop the responder."""
        await self.stop()

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        try:
            data = await asyncio.wait_for(
                reader.readexactly(HANDSHAKE_LENGTH), timeout=self.read_timeout
            )
            incoming = Handshake.decode(data)
            if incoming.info_hash != self.info_hash:
                logger.debug("Handshake from %s for unknown info hash", peer)
                return
            writer.write(self._reply)
            await writer.drain()
            self.handshakes_answered += 1
            logger.debug("Answered handshake from %s", peer)
        except (asyncio.IncompleteReadError, asyncio.TimeoutError, HandshakeError) as e:
            logger.debug("Dropped connection from %s: %s", peer, e)
        except OSError as e:
            logger.debug("Connection error with %s: %s", peer, e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
