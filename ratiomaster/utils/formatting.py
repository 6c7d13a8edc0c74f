"""Human readable sizes, durations and ratios."""

from __future__ import annotations

SIZE_UNITS = ("KB", "MB", "GB", "TB")


def format_size(num_bytes: int | float) -> str:
    """Format a byte count with 1024-based units.

    Whole values print without decimals, others with one decimal place.

    >>> format_size(512)
    '512 B'
    >>> format_size(1536)
    '1.5 KB'
    >>> format_size(104857600)
    '100 MB'
    """
    if num_bytes < 1024:
        return f"{int(num_bytes)} B"

    value = float(num_bytes)
    index = -1
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1

    if value == int(value):
        return f"{int(value)} {SIZE_UNITS[index]}"
    return f"{value:.1f} {SIZE_UNITS[index]}"


def format_duration(seconds: int | float) -> str:
    """Format seconds as ``Ns``, ``MmSs`` or ``HhMm``.

    >>> format_duration(42)
    '42s'
    >>> format_duration(125)
    '2m5s'
    >>> format_duration(7260)
    '2h1m'
    """
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m{seconds % 60}s"
    return f"{seconds // 3600}h{(seconds % 3600) // 60}m"


def format_ratio(uploaded: int, downloaded: int) -> str:
    """Format uploaded/downloaded to two decimals."""
    if downloaded <= 0:
        return "0.00"
    return f"{uploaded / downloaded:.2f}"


def ratio_status(uploaded: int, downloaded: int) -> str:
    """Classify a ratio as ``low``, ``equal`` or ``high``.

    Compares the two-decimal figure that is displayed.
    """
    ratio = float(format_ratio(uploaded, downloaded))
    if ratio < 1.0:
        return "low"
    if ratio > 1.0:
        return "high"
    return "equal"
