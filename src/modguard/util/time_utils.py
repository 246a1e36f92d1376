"""Clock helpers and duration parsing/formatting shared by the moderation core."""

from __future__ import annotations

import re
import time

DURATION_PATTERN = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)

DURATION_UNITS_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

# Discord rejects member timeouts longer than 28 days.
MAX_TIMEOUT_MS = 28 * DURATION_UNITS_MS["d"]


def epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def monotonic_ms() -> int:
    """Monotonic clock in milliseconds, for windows that must not jump."""
    return int(time.monotonic() * 1000)


def parse_duration(spec: str | None) -> int | None:
    """
    Convert a ``<integer><s|m|h|d>`` spec like ``10m`` to milliseconds.

    Returns None for anything that does not match or is not positive.
    """
    match = DURATION_PATTERN.match((spec or "").strip())
    if not match:
        return None
    value = int(match.group(1))
    if value <= 0:
        return None
    return value * DURATION_UNITS_MS[match.group(2).lower()]


def format_duration(duration_ms: int) -> str:
    """
    Render a millisecond duration in its largest whole unit.

    Args:
        duration_ms (int): Duration in milliseconds.

    Returns:
        str: Compact label such as ``10m`` or ``2h``, falling back to seconds.
    """
    for unit in ("d", "h", "m"):
        size = DURATION_UNITS_MS[unit]
        if duration_ms >= size and duration_ms % size == 0:
            return f"{duration_ms // size}{unit}"
    return f"{max(duration_ms, 0) // 1000}s"
