"""Verbosity management for the ratio-master CLI.

Maps repeated -v flags onto logging levels.
"""

from __future__ import annotations

import logging
from enum import IntEnum

from ratiomaster.models import LogLevel


class VerbosityLevel(IntEnum):
    """Verbosity levels for CLI commands."""

    NORMAL = 0  # Default: configured log level
    VERBOSE = 1  # -v: informational messages
    DEBUG = 2  # -vv: debug messages


class VerbosityManager:
    """Manages verbosity levels and maps them to logging levels."""

    LEVEL_TO_LOG_LEVEL: dict[VerbosityLevel, LogLevel] = {
        VerbosityLevel.VERBOSE: LogLevel.INFO,
        VerbosityLevel.DEBUG: LogLevel.DEBUG,
    }

    def __init__(self, verbosity_count: int = 0):
        """Initialize verbosity manager.

        Args:
            verbosity_count: Number of -v flags

        """
        self.verbosity_count = max(0, min(2, verbosity_count))
        self.level = VerbosityLevel(self.verbosity_count)

    def log_level(self, configured: LogLevel) -> LogLevel:
        """Effective log level; -v flags only ever make logging chattier."""
        override = self.LEVEL_TO_LOG_LEVEL.get(self.level)
        if override is None:
            return configured
        if logging.getLevelName(override.value) < logging.getLevelName(configured.value):
            return override
        return configured
