"""Logging setup for ratio-master.

Console records go to stderr so they never tear the live progress display on
stdout. Announce records carry session fields (``info_hash``,
``announce_event``, counters) that the JSON formatter emits as keys.
"""

from __future__ import annotations

import json
import logging
import logging.config
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from ratiomaster.models import ObservabilityConfig

correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Extra attributes announce records may carry, in output order
SESSION_FIELDS = (
    "info_hash",
    "announce_event",
    "announce_status",
    "interval",
    "uploaded",
    "downloaded",
    "left",
)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CorrelationFilter(logging.Filter):
    """Stamp records with the session's correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record with the session fields as keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        corr_id = getattr(record, "correlation_id", None)
        if corr_id and corr_id != "-":
            entry["correlation_id"] = corr_id
        for field in SESSION_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console lines with ANSI-colored level names."""

    COLORS: ClassVar[dict[int, str]] = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET: ClassVar[str] = "\033[0m"

    def __init__(self, fmt: str, datefmt: str | None = None, use_color: bool = True):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        color = self.COLORS.get(record.levelno) if self.use_color else None
        if color is None:
            return super().formatMessage(record)
        # Color a copy; other handlers share the record
        colored = logging.makeLogRecord(
            dict(record.__dict__, levelname=f"{color}{record.levelname}{self.RESET}")
        )
        return super().formatMessage(colored)


def _console_format(with_correlation: bool) -> str:
    if with_correlation:
        return "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
    return "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(config: ObservabilityConfig, *, use_color: bool = True) -> None:
    """Configure the ``ratiomaster`` logger tree from ``config``.

    Args:
        config: Level, optional log file and output format
        use_color: Color console level names (off for ``--no-color``)

    """
    with_correlation = config.log_correlation_id
    text_format = _console_format(with_correlation)
    formatter = "json" if config.structured_logging else "text"
    filters = ["correlation"] if with_correlation else []

    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": config.log_level.value,
            "formatter": formatter,
            "filters": filters,
            "stream": sys.stderr,
        },
    }
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": config.log_level.value,
            "formatter": "json" if config.structured_logging else "plain",
            "filters": filters,
            "filename": config.log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {
                    "()": ColoredFormatter,
                    "fmt": text_format,
                    "datefmt": DATE_FORMAT,
                    "use_color": use_color,
                },
                "plain": {"format": text_format, "datefmt": DATE_FORMAT},
                "json": {"()": StructuredFormatter},
            },
            "filters": {"correlation": {"()": CorrelationFilter}},
            "handlers": handlers,
            "loggers": {
                "ratiomaster": {
                    "level": config.log_level.value,
                    "handlers": list(handlers),
                    "propagate": False,
                },
            },
            "root": {"level": logging.WARNING, "handlers": ["console"]},
        }
    )


def set_correlation_id(corr_id: str | None = None) -> str:
    """Set the correlation id for the current context, generating one if needed."""
    if corr_id is None:
        corr_id = uuid.uuid4().hex[:12]
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str | None:
    return correlation_id.get()
