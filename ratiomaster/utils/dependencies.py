"""Startup check for libraries and primitives the announce path needs."""

from __future__ import annotations

import hashlib
import importlib.util

from ratiomaster.exceptions import MissingDependencyError

REQUIRED_MODULES = ("aiohttp", "yarl")


def check_dependencies() -> None:
    """Fail fast when the HTTP client or SHA-1 is unavailable.

    Raises:
        MissingDependencyError: If anything required is missing

    """
    if "sha1" not in hashlib.algorithms_available:
        msg = "SHA-1 hash primitive is not available"
        raise MissingDependencyError(msg)

    missing = [name for name in REQUIRED_MODULES if importlib.util.find_spec(name) is None]
    if missing:
        msg = f"Missing required libraries: {', '.join(missing)}"
        raise MissingDependencyError(msg, {"missing": missing})
