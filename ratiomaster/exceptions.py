"""Exception hierarchy for ratio-master.

Errors raised before the announce loop starts (unreadable files, malformed
torrents, missing dependencies, bad configuration) are fatal. Errors raised
while talking to the tracker derive from AnnounceError and are recovered by
the session loop.
"""

from __future__ import annotations

from typing import Any


class RatioMasterError(Exception):
    """Base exception for all ratio-master errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize ratio-master error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class TorrentFileError(RatioMasterError):
    """Torrent file is missing or cannot be read."""


class ValidationError(RatioMasterError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class InvalidFormatError(ValidationError):
    """File is not a bencoded torrent."""


class MissingInfoDictError(InvalidFormatError):
    """Torrent carries no info dictionary."""


class MalformedBencodeError(ValidationError):
    """Bencoded data could not be walked."""

    def __init__(self, message: str, offset: int):
        """Initialize with the offending byte offset."""
        super().__init__(f"{message} at offset {offset}", {"offset": offset})
        self.offset = offset

    def __str__(self) -> str:
        """Return the message; the offset is already part of it."""
        return self.message


class MissingDependencyError(RatioMasterError):
    """A required library or primitive is unavailable."""


class AnnounceError(RatioMasterError):
    """Recoverable tracker announce errors."""


class NetworkError(AnnounceError):
    """DNS, connection or timeout failure while announcing."""


class HttpError(AnnounceError):
    """Tracker answered with a non-2xx status."""

    def __init__(self, status: int, reason: str | None = None):
        """Initialize with the HTTP status code."""
        message = f"HTTP {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.status = status


class TrackerError(AnnounceError):
    """Tracker answered with a bencoded failure reason."""

    def __init__(self, reason: str):
        """Initialize with the tracker's failure reason."""
        super().__init__(f"Tracker failure: {reason}")
        self.reason = reason


class HandshakeError(RatioMasterError):
    """Peer handshake protocol errors."""
