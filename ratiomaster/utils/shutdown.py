"""Global shutdown state and termination signal plumbing.

The first SIGTERM/SIGHUP cancels the running session task so its final
``stopped`` announce runs; a repeated signal falls through to the default
disposition and terminates the process immediately. SIGINT is left to
``asyncio.run``, which behaves the same way for Ctrl+C.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import threading

logger = logging.getLogger(__name__)

# Global shutdown flag (thread-safe)
_shutdown_flag: threading.Event = threading.Event()
_shutdown_lock: threading.Lock = threading.Lock()

TERMINATION_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig
)


def is_shutting_down() -> bool:
    """Check if shutdown is in progress."""
    return _shutdown_flag.is_set()


def set_shutdown() -> None:
    """Mark that shutdown has been initiated."""
    with _shutdown_lock:
        _shutdown_flag.set()


def clear_shutdown() -> None:
    """Clear shutdown flag (for testing)."""
    with _shutdown_lock:
        _shutdown_flag.clear()


def install_signal_handlers(task: asyncio.Task) -> list[signal.Signals]:
    """Cancel ``task`` on the first termination signal.

    Returns:
        The signals a handler was installed for (empty where the event loop
        does not support signal handlers)

    """
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def _handle(sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down", sig.name)
        set_shutdown()
        # Next delivery of the same signal uses the default action
        loop.remove_signal_handler(sig)
        task.cancel()

    for sig in TERMINATION_SIGNALS:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _handle, sig)
            installed.append(sig)

    return installed
