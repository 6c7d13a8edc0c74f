"""Command line interface for ratio-master."""

from __future__ import annotations

from ratiomaster.cli.main import cli

__all__ = ["cli"]
