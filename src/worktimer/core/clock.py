# src/worktimer/core/clock.py

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SystemClock:
    """Wall clock. Unlike a monotonic source it can jump, callers clamp deltas."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


def parse_timestamp_ms(value: object) -> int | None:
    """
    ISO-8601 string -> epoch milliseconds.

    Anything that does not parse (None, empty, garbage, wrong type) is treated as
    absent so callers can move on to the next fallback. Naive values are read as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def ms_to_iso(ms: int) -> str:
    """Epoch milliseconds -> UTC ISO-8601 with millisecond precision."""
    dt = _EPOCH + timedelta(milliseconds=int(ms))
    return dt.isoformat(timespec="milliseconds")


def format_duration(ms: int | float) -> str:
    total_seconds = max(0, int(ms // 1000))
    h = total_seconds // 3600
    m = (total_seconds % 3600) // 60
    s = total_seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_local_datetime(iso: str | None) -> str:
    """Render a stored timestamp for humans; "-" when missing or malformed."""
    ms = parse_timestamp_ms(iso)
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M:%S")
