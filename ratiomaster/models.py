"""Pydantic models for ratio-master.

Provides validated configuration sections and the immutable values derived
once per run (torrent metadata, info hash, session identity).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_PIECE_LENGTH = 262144


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TorrentMetadata(BaseModel):
    """Display and sizing fields scanned from a torrent file."""

    name: str = Field(..., description="Display name")
    total_length: int = Field(
        default=0,
        ge=0,
        description="Total payload size in bytes (0 if undeterminable)",
    )
    piece_length: int = Field(
        default=DEFAULT_PIECE_LENGTH,
        gt=0,
        description="Piece size in bytes",
    )
    tracker_url: str = Field(default="", description="Announce URL")
    comment: str = Field(default="", description="Torrent comment")

    model_config = {"frozen": True}

    @property
    def piece_count(self) -> int | None:
        """Number of pieces, or None when the total size is unknown."""
        if self.total_length <= 0:
            return None
        return -(-self.total_length // self.piece_length)

    @property
    def size_known(self) -> bool:
        """Whether a payload size could be determined."""
        return self.total_length > 0


class InfoHash(BaseModel):
    """SHA-1 digest of the raw info dictionary span."""

    digest: bytes = Field(
        ...,
        min_length=20,
        max_length=20,
        description="Raw 20-byte SHA-1 digest",
    )

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def hex(self) -> str:
        """Lowercase hex form for display and logs."""
        return self.digest.hex()

    @property
    def url_encoded(self) -> str:
        """Percent-encoded form for the announce query string."""
        from ratiomaster.torrent import tracker_quote

        return tracker_quote(self.digest)

    def __str__(self) -> str:
        """Return the hex form."""
        return self.hex


class SessionIdentity(BaseModel):
    """Identifiers held for the lifetime of one announce session."""

    peer_id: bytes = Field(
        ...,
        min_length=20,
        max_length=20,
        description="20-byte peer id",
    )
    session_key: str = Field(
        ...,
        pattern=r"^[0-9A-F]{8}$",
        description="Tracker-side session correlation key",
    )
    listen_port: int = Field(..., ge=1, le=65535, description="Announced port")

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class NetworkConfig(BaseModel):
    """Network configuration."""

    announce_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Hard timeout for a single announce request in seconds",
    )
    listen_port: int | None = Field(
        default=None,
        ge=1024,
        le=65535,
        description="Announced listen port (random per session if unset)",
    )
    enable_responder: bool = Field(
        default=False,
        description="Answer incoming peer handshakes on the listen port",
    )
    responder_host: str = Field(
        default="0.0.0.0",  # nosec B104 - peers connect from anywhere
        description="Interface the handshake responder binds to",
    )


class TrackerConfig(BaseModel):
    """Tracker announce configuration."""

    default_interval: int = Field(
        default=1800,
        ge=1,
        le=86400,
        description="Announce interval used until the tracker supplies one",
    )
    min_interval: int | None = Field(
        default=None,
        ge=1,
        le=86400,
        description="Optional lower bound applied to tracker-supplied intervals",
    )
    numwant_downloading: int = Field(
        default=200,
        ge=0,
        le=1000,
        description="numwant sent while bytes are left to download",
    )
    numwant_seeding_min: int = Field(
        default=20,
        ge=0,
        le=1000,
        description="Lower bound of the randomized numwant while seeding",
    )
    numwant_seeding_max: int = Field(
        default=50,
        ge=0,
        le=1000,
        description="Upper bound of the randomized numwant while seeding",
    )

    @model_validator(mode="after")
    def validate_numwant_range(self) -> TrackerConfig:
        """Ensure the seeding numwant range is ordered."""
        if self.numwant_seeding_min > self.numwant_seeding_max:
            msg = "numwant_seeding_min must not exceed numwant_seeding_max"
            raise ValueError(msg)
        return self


class SimulationConfig(BaseModel):
    """Upload simulation configuration."""

    speed_kib: int = Field(
        default=512,
        ge=1,
        description="Target upload speed in KiB/s",
    )
    jitter: float = Field(
        default=0.30,
        ge=0.0,
        lt=1.0,
        description="Relative speed jitter applied on every tick",
    )
    tick_interval: float = Field(
        default=0.1,
        gt=0.0,
        le=10.0,
        description="Seconds between counter updates",
    )
    upload_size_mib: int | None = Field(
        default=None,
        ge=1,
        le=8388608,
        description="Stop after uploading this many MiB (run until interrupted if unset)",
    )
    duration: int | None = Field(
        default=None,
        ge=1,
        description="Stop after this many seconds (run until interrupted if unset)",
    )
    unknown_size_fallback: int = Field(
        default=1024 * 1024 * 1024,
        ge=1,
        description="Reported downloaded bytes when the torrent size is unknown",
    )

    @field_validator("tick_interval")
    @classmethod
    def validate_tick_interval(cls, v: float) -> float:
        """Reject ticks shorter than the event loop can schedule reliably."""
        if v < 0.01:
            msg = "tick_interval must be at least 0.01 seconds"
            raise ValueError(msg)
        return v

    @property
    def upload_target(self) -> int | None:
        """Upload target in bytes."""
        if self.upload_size_mib is None:
            return None
        return self.upload_size_mib * 1024 * 1024


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Emit JSON log lines instead of colored text",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Tag log records with a per-session correlation id",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        """Accept level names in any case."""
        if isinstance(v, str):
            return v.upper()
        return v


class Config(BaseModel):
    """Main configuration model."""

    network: NetworkConfig = Field(
        default_factory=NetworkConfig,
        description="Network configuration",
    )
    tracker: TrackerConfig = Field(
        default_factory=TrackerConfig,
        description="Tracker announce configuration",
    )
    simulation: SimulationConfig = Field(
        default_factory=SimulationConfig,
        description="Upload simulation configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
