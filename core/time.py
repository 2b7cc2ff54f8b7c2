# PATH: core/time.py
"""
Time utilities for the fetcher.
"""

import time


def elapsed_ms(start: float) -> int:
    """Milliseconds elapsed since a time.monotonic() reading."""
    return int((time.monotonic() - start) * 1000)


def ms_to_seconds(value_ms: int | float | None) -> float | None:
    """Convert a millisecond tunable to seconds (None passes through)."""
    if value_ms is None:
        return None
    return value_ms / 1000
