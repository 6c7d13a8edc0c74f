"""Mutable announce state owned by a session."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Lifecycle(str, Enum):
    """Announce session lifecycle states."""

    NOT_STARTED = "not_started"
    STARTED = "started"
    SEEDING = "seeding"
    STOPPED = "stopped"


@dataclass
class AnnounceState:
    """Counters and timing reported to the tracker."""

    downloaded: int
    uploaded: int = 0
    left: int = 0
    announce_interval: int = 1800
    session_start_at: float = 0.0
    last_announce_at: float = 0.0
    lifecycle: Lifecycle = Lifecycle.NOT_STARTED
    announce_count: int = 0
    failure_count: int = 0
    events: list[str] = field(default_factory=list)

    def add_uploaded(self, amount: int) -> None:
        """Advance the upload counter; it never moves backwards."""
        if amount < 0:
            msg = f"Upload increment must be non-negative, got {amount}"
            raise ValueError(msg)
        self.uploaded += amount

    @property
    def ratio(self) -> float:
        """Uploaded over downloaded."""
        if self.downloaded <= 0:
            return 0.0
        return self.uploaded / self.downloaded
