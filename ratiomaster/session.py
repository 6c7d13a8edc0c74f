"""Announce session lifecycle.

One ``AnnounceSession`` drives a torrent through
``not_started -> started -> seeding -> stopped``: a ``started`` announce, a
seeding loop that advances the upload counter every tick and re-announces
whenever the tracker's interval elapses, and a final ``stopped`` announce
on every exit path, including cancellation.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from pathlib import Path
from typing import Awaitable, Callable, NamedTuple

from ratiomaster.config import get_config
from ratiomaster.exceptions import InvalidFormatError
from ratiomaster.identity import generate_identity
from ratiomaster.logging_config import set_correlation_id
from ratiomaster.models import Config, InfoHash, SessionIdentity, TorrentMetadata
from ratiomaster.responder import HandshakeResponder
from ratiomaster.state import AnnounceState, Lifecycle
from ratiomaster.torrent import extract_metadata, info_hash_from_bytes, read_torrent_bytes
from ratiomaster.tracker import AnnounceClient, AnnounceEvent, AnnounceOutcome

logger = logging.getLogger(__name__)

TickCallback = Callable[["AnnounceSession"], None]
AnnounceCallback = Callable[["AnnounceSession", AnnounceOutcome], None]


class PreparedTorrent(NamedTuple):
    """Everything derived from the torrent file before any network traffic."""

    metadata: TorrentMetadata
    info_hash: InfoHash


def prepare_torrent(
    torrent_path: str | Path, *, require_tracker: bool = True
) -> PreparedTorrent:
    """Read, scan and hash a torrent file.

    All failures here are fatal to the run.

    Raises:
        TorrentFileError: If the file is missing or unreadable
        InvalidFormatError: If the file is not a torrent or has no tracker
        MalformedBencodeError: If the info dictionary cannot be walked

    """
    data = read_torrent_bytes(torrent_path)
    metadata = extract_metadata(data, torrent_path)
    info_hash = info_hash_from_bytes(data)
    logger.debug("Info hash: %s", info_hash.hex)

    if require_tracker and not metadata.tracker_url:
        msg = "Torrent has no announce URL"
        raise InvalidFormatError(msg)

    return PreparedTorrent(metadata, info_hash)


class AnnounceSession:
    """Owns the announce state of one simulated seeding session."""

    def __init__(
        self,
        metadata: TorrentMetadata,
        info_hash: InfoHash,
        identity: SessionIdentity | None = None,
        config: Config | None = None,
        client: AnnounceClient | None = None,
        on_tick: TickCallback | None = None,
        on_announce: AnnounceCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the session.

        Args:
            metadata: Torrent metadata
            info_hash: Torrent info hash
            identity: Session identity (generated if None)
            config: Configuration (defaults to get_config())
            client: Announce client (built from the other arguments if None)
            on_tick: Called after every counter update
            on_announce: Called after every announce attempt
            clock: Monotonic time source
            sleep: Coroutine function used to wait between ticks

        """
        self.config = config or get_config()
        self.metadata = metadata
        self.info_hash = info_hash
        self.identity = identity or generate_identity(self.config.network.listen_port)
        self.client = client or AnnounceClient(
            metadata.tracker_url, info_hash, self.identity, self.config
        )
        self.on_tick = on_tick
        self.on_announce = on_announce
        self._clock = clock
        self._sleep = sleep

        simulation = self.config.simulation
        # Always a finished download: left stays 0 for the whole session
        self.state = AnnounceState(
            downloaded=metadata.total_length or simulation.unknown_size_fallback,
            left=0,
            announce_interval=self.config.tracker.default_interval,
        )
        self.outcomes: list[AnnounceOutcome] = []
        self.current_speed: float = 0.0
        self._stop_requested = False

    @property
    def target_speed(self) -> int:
        """Configured upload speed in bytes per second."""
        return self.config.simulation.speed_kib * 1024

    @property
    def upload_target(self) -> int | None:
        """Bytes after which the session stops itself."""
        return self.config.simulation.upload_target

    def jittered_speed(self) -> float:
        """Target speed perturbed by a uniform +/- jitter."""
        jitter = self.config.simulation.jitter
        return self.target_speed * random.uniform(1.0 - jitter, 1.0 + jitter)  # nosec B311 - simulation noise

    def tick(self, elapsed: float) -> int:
        """Advance the upload counter by ``elapsed`` seconds of simulated transfer.

        Returns:
            Bytes added

        """
        self.current_speed = self.jittered_speed()
        amount = int(self.current_speed * elapsed)
        target = self.upload_target
        if target is not None:
            amount = min(amount, max(target - self.state.uploaded, 0))
        self.state.add_uploaded(amount)
        return amount

    def request_stop(self) -> None:
        """Ask the seeding loop to finish after the current tick."""
        self._stop_requested = True

    def seconds_until_announce(self) -> float:
        """Seconds left before the next periodic announce."""
        due = self.state.last_announce_at + self.state.announce_interval
        return max(due - self._clock(), 0.0)

    def elapsed(self) -> float:
        """Seconds since the session started."""
        return self._clock() - self.state.session_start_at

    def _limit_reached(self) -> bool:
        target = self.upload_target
        if target is not None and self.state.uploaded >= target:
            logger.info("Upload target of %d bytes reached", target)
            return True
        duration = self.config.simulation.duration
        if duration is not None and self.elapsed() >= duration:
            logger.info("Session duration of %ds reached", duration)
            return True
        return False

    async def run(self) -> AnnounceState:
        """Run the session until stopped, a limit is reached or cancelled.

        The ``stopped`` announce is sent on every exit path once ``started``
        has been attempted. Cancellation is re-raised after it.
        """
        if self.config.observability.log_correlation_id:
            set_correlation_id()
        self.state.session_start_at = self._clock()
        self.state.last_announce_at = self.state.session_start_at

        async with contextlib.AsyncExitStack() as stack:
            await stack.enter_async_context(self.client)
            network = self.config.network
            if network.enable_responder:
                responder = HandshakeResponder(
                    self.info_hash.digest,
                    self.identity.peer_id,
                    self.identity.listen_port,
                    host=network.responder_host,
                )
                try:
                    await stack.enter_async_context(responder)
                except OSError as e:
                    logger.warning("Handshake responder unavailable: %s", e)

            try:
                self.state.lifecycle = Lifecycle.STARTED
                await self._announce(AnnounceEvent.STARTED)
                self.state.lifecycle = Lifecycle.SEEDING
                await self._seed()
            finally:
                await self._finish()

        return self.state

    async def _seed(self) -> None:
        tick_interval = self.config.simulation.tick_interval
        last_tick = self._clock()

        while not self._stop_requested:
            await self._sleep(tick_interval)
            if self._stop_requested:
                break

            now = self._clock()
            self.tick(now - last_tick)
            last_tick = now
            if self.on_tick is not None:
                self.on_tick(self)

            if self._limit_reached():
                break

            if now - self.state.last_announce_at >= self.state.announce_interval:
                await self._announce(AnnounceEvent.NONE)

    async def _finish(self) -> None:
        if self.state.lifecycle in (Lifecycle.NOT_STARTED, Lifecycle.STOPPED):
            self.state.lifecycle = Lifecycle.STOPPED
            return
        try:
            await self._announce(AnnounceEvent.STOPPED)
        finally:
            self.state.lifecycle = Lifecycle.STOPPED
            logger.info(
                "Session stopped after %.1fs: uploaded=%d downloaded=%d",
                self.elapsed(),
                self.state.uploaded,
                self.state.downloaded,
            )

    async def _announce(self, event: AnnounceEvent) -> AnnounceOutcome:
        outcome = await self.client.announce(event, self.state)
        # The timer resets whatever the outcome
        self.state.last_announce_at = self._clock()
        self.state.announce_count += 1
        if not outcome.ok:
            self.state.failure_count += 1
        self.state.events.append(event.label)
        self.outcomes.append(outcome)
        if self.on_announce is not None:
            self.on_announce(self, outcome)
        return outcome
