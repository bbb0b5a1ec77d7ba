from __future__ import annotations

from datetime import datetime, timezone
import time


def now_ms() -> int:
    """Wall clock in epoch milliseconds (the unit persisted in the store)."""
    return int(time.time() * 1000)


def from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """
    Accept epoch milliseconds (int/float/numeric str) or ISO-8601 text and
    return an aware UTC datetime. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return from_epoch_ms(value)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(value).strip()
    if not s:
        return None
    if s.isdigit():
        return parse_timestamp(int(s))
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
