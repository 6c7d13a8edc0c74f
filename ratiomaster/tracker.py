"""Async HTTP tracker announces.

Builds announce requests the way uTorrent 3.5.5 does (parameter order,
header set, 16 KiB rounding of transfer counters) and classifies the
tracker's answer. Retry timing belongs to the caller; a request is never
retried here.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import aiohttp
from yarl import URL

from ratiomaster.bencode import find_int_value, find_string_value
from ratiomaster.config import get_config
from ratiomaster.exceptions import AnnounceError, HttpError, NetworkError, TrackerError
from ratiomaster.identity import USER_AGENT
from ratiomaster.torrent import tracker_quote

if TYPE_CHECKING:
    from ratiomaster.models import Config, InfoHash, SessionIdentity
    from ratiomaster.state import AnnounceState

logger = logging.getLogger(__name__)

BLOCK_SIZE = 16 * 1024


class AnnounceEvent(str, Enum):
    """Announce event types; NONE is a regular periodic announce."""

    NONE = ""
    STARTED = "started"
    STOPPED = "stopped"

    @property
    def label(self) -> str:
        """Human readable name."""
        return self.value or "none"


class AnnounceStatus(str, Enum):
    """Classification of an announce attempt."""

    OK = "ok"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    TRACKER_ERROR = "tracker_error"


@dataclass
class TrackerResponse:
    """Fields of a tracker response this client interprets."""

    interval: int | None = None
    failure_reason: str | None = None


@dataclass
class AnnounceOutcome:
    """Result of one announce attempt."""

    event: AnnounceEvent
    status: AnnounceStatus
    interval: int | None = None
    http_status: int | None = None
    failure_reason: str | None = None
    error: AnnounceError | None = None

    @property
    def ok(self) -> bool:
        """Whether the tracker accepted the announce."""
        return self.status is AnnounceStatus.OK


def round_to_block(value: int, block: int = BLOCK_SIZE) -> int:
    """Round a byte counter down to a whole number of blocks."""
    return value - value % block


def build_announce_url(
    base_url: str,
    info_hash: InfoHash,
    identity: SessionIdentity,
    uploaded: int,
    downloaded: int,
    left: int,
    event: AnnounceEvent,
    numwant: int,
) -> str:
    """Build the announce URL with parameters in uTorrent's order.

    ``uploaded`` and ``downloaded`` are rounded down to 16 KiB here.
    """
    params: list[tuple[str, str]] = [
        ("info_hash", info_hash.url_encoded),
        ("peer_id", tracker_quote(identity.peer_id)),
        ("port", str(identity.listen_port)),
        ("uploaded", str(round_to_block(uploaded))),
        ("downloaded", str(round_to_block(downloaded))),
        ("left", str(left)),
        ("corrupt", "0"),
        ("key", identity.session_key),
    ]
    if event is not AnnounceEvent.NONE:
        params.append(("event", event.value))
    params.extend(
        [
            ("numwant", str(numwant)),
            ("compact", "1"),
            ("no_peer_id", "1"),
        ]
    )

    separator = "&" if "?" in base_url else "?"
    query_string = "&".join(f"{key}={value}" for key, value in params)
    return f"{base_url}{separator}{query_string}"


def parse_tracker_response(body: bytes) -> TrackerResponse:
    """Extract ``failure reason`` and ``interval`` from a tracker response.

    Raises:
        TrackerError: If the body is not a bencoded dictionary

    """
    if not body.startswith(b"d"):
        msg = "Invalid tracker response"
        raise TrackerError(msg)

    reason = find_string_value(body, b"failure reason")
    return TrackerResponse(
        interval=find_int_value(body, b"interval"),
        failure_reason=reason.decode("utf-8", errors="replace") if reason is not None else None,
    )


class AnnounceClient:
    """Async client announcing one torrent to one HTTP tracker."""

    def __init__(
        self,
        tracker_url: str,
        info_hash: InfoHash,
        identity: SessionIdentity,
        config: Config | None = None,
    ):
        """Initialize the announce client.

        Args:
            tracker_url: Announce URL from the torrent
            info_hash: Info hash of the torrent
            identity: Session identity to announce with
            config: Configuration (defaults to get_config())

        """
        self.config = config or get_config()
        self.tracker_url = tracker_url
        self.info_hash = info_hash
        self.identity = identity
        self.user_agent = USER_AGENT

        self.session: aiohttp.ClientSession | None = None
        self._lock = asyncio.Lock()

    @property
    def headers(self) -> dict[str, str]:
        """Request headers; aiohttp adds Host in front of them."""
        return {
            "User-Agent": self.user_agent,
            "Accept-Encoding": "gzip",
            "Accept": "",
        }

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session is not None:
            return
        timeout = aiohttp.ClientTimeout(total=self.config.network.announce_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)
        logger.debug("Announce client started for %s", self.tracker_url)

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.debug("Announce client stopped")

    async def __aenter__(self) -> AnnounceClient:
        """Start the client."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop the client."""
        await self.stop()

    def numwant(self, left: int) -> int:
        """Peers requested: many while downloading, a random few while seeding."""
        tracker = self.config.tracker
        if left > 0:
            return tracker.numwant_downloading
        return random.randint(tracker.numwant_seeding_min, tracker.numwant_seeding_max)  # nosec B311 - not security relevant

    def build_url(self, event: AnnounceEvent, state: AnnounceState) -> str:
        """Build the announce URL for the current state."""
        return build_announce_url(
            self.tracker_url,
            self.info_hash,
            self.identity,
            uploaded=state.uploaded,
            downloaded=state.downloaded,
            left=state.left,
            event=event,
            numwant=self.numwant(state.left),
        )

    def _log_fields(
        self, event: AnnounceEvent, state: AnnounceState, status: AnnounceStatus
    ) -> dict[str, object]:
        return {
            "info_hash": self.info_hash.hex,
            "announce_event": event.label,
            "announce_status": status.value,
            "interval": state.announce_interval,
            "uploaded": state.uploaded,
            "downloaded": state.downloaded,
            "left": state.left,
        }

    async def announce(
        self, event: AnnounceEvent, state: AnnounceState
    ) -> AnnounceOutcome:
        """Send one announce and classify the result.

        Recoverable failures are returned in the outcome, never raised. A
        successful response carrying an interval updates
        ``state.announce_interval``.
        """
        # Announces for one session are strictly sequential
        async with self._lock:
            url = self.build_url(event, state)
            logger.debug("Announcing event=%s to %s", event.label, url)
            try:
                body = await self._make_request(url)
                response = parse_tracker_response(body)
                if response.failure_reason is not None:
                    raise TrackerError(response.failure_reason)
            except HttpError as e:
                outcome = AnnounceOutcome(
                    event, AnnounceStatus.HTTP_ERROR, http_status=e.status, error=e
                )
            except NetworkError as e:
                outcome = AnnounceOutcome(event, AnnounceStatus.NETWORK_ERROR, error=e)
            except TrackerError as e:
                outcome = AnnounceOutcome(
                    event,
                    AnnounceStatus.TRACKER_ERROR,
                    failure_reason=e.reason,
                    error=e,
                )
            else:
                if response.interval is not None:
                    interval = response.interval
                    floor = self.config.tracker.min_interval
                    if floor is not None and interval < floor:
                        interval = floor
                    state.announce_interval = interval
                outcome = AnnounceOutcome(event, AnnounceStatus.OK, interval=response.interval)

        fields = self._log_fields(event, state, outcome.status)
        if outcome.ok:
            logger.info("Announce (%s) accepted", event.label, extra=fields)
        else:
            logger.warning(
                "Announce (%s) %s: %s",
                event.label,
                "rejected" if outcome.status is AnnounceStatus.TRACKER_ERROR else "failed",
                outcome.error,
                extra=fields,
            )
        return outcome

    async def _make_request(self, url: str) -> bytes:
        """Make the HTTP GET request and return the body."""
        if self.session is None:
            msg = "Announce client not started"
            raise RuntimeError(msg)
        try:
            # The query is already percent-encoded; keep yarl from requoting it
            async with self.session.get(
                URL(url, encoded=True), headers=self.headers
            ) as response:
                if not 200 <= response.status < 300:
                    raise HttpError(response.status, response.reason)
                return await response.read()
        except asyncio.TimeoutError as e:
            msg = "Tracker request timed out"
            raise NetworkError(msg) from e
        except aiohttp.ClientError as e:
            msg = f"Network error: {e}"
            raise NetworkError(msg) from e
