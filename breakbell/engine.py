"""
Pure scheduling decisions.

All timestamps are epoch milliseconds; wall-clock questions (hour of day,
calendar date, the daily anchor) are answered in the host's local timezone.
Nothing here touches storage or the platform.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .storage import ReminderState

MS_PER_SECOND = 1000


class StaleState(str, Enum):
    MISSING = "MISSING"
    EXPIRED = "EXPIRED"
    VALID = "VALID"


def _local(ts_ms: int) -> datetime:
    return datetime.fromtimestamp(ts_ms / MS_PER_SECOND)


def _epoch_ms(dt: datetime) -> int:
    return int(round(dt.timestamp() * MS_PER_SECOND))


def compute_next_fire(now: int, interval_seconds: int) -> int:
    if interval_seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval_seconds}")
    return now + interval_seconds * MS_PER_SECOND


def hour_in_window(hour: int, start: int, end: int) -> bool:
    # start == end falls in the first branch and is never quiet.
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def is_within_quiet_hours(now: int, state: ReminderState) -> bool:
    if not state.quiet_hours_enabled:
        return False
    return hour_in_window(_local(now).hour, state.quiet_hours_start, state.quiet_hours_end)


def resolve_stale_state(stored_next: int, now: int) -> StaleState:
    if stored_next <= 0:
        return StaleState.MISSING
    if stored_next <= now:
        return StaleState.EXPIRED
    return StaleState.VALID


def align_to_reset_boundary(now: int, reset_hour: int, interval_seconds: int) -> int:
    """
    First reminder of the day after a daily reset.

    The anchor is today at ``reset_hour:00`` local time. The first fire is one
    interval after the anchor; a late reset (Doze, or a desktop pump started
    hours after the anchor) skips ahead by whole intervals until the result is
    in the future, so the rest of today keeps its cadence.
    """
    if interval_seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval_seconds}")
    anchor = _local(now).replace(hour=reset_hour, minute=0, second=0, microsecond=0)
    step = interval_seconds * MS_PER_SECOND
    first = _epoch_ms(anchor) + step
    if first <= now:
        missed = (now - first) // step + 1
        first += missed * step
    return first


def next_daily_anchor(now: int, reset_hour: int) -> int:
    local_now = _local(now)
    anchor = local_now.replace(hour=reset_hour, minute=0, second=0, microsecond=0)
    if _epoch_ms(anchor) <= now:
        anchor += timedelta(days=1)
    return _epoch_ms(anchor)


def is_missed_fire(stored_next: int, now: int, grace_ms: int) -> bool:
    return 0 < stored_next < now - grace_ms


def time_remaining(stored_next: int, now: int) -> Optional[int]:
    if stored_next <= 0:
        return None
    remaining = stored_next - now
    return remaining if remaining > 0 else None


def format_countdown(remaining_ms: int) -> str:
    total = max(0, remaining_ms) // MS_PER_SECOND
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def local_date(now: int) -> str:
    return _local(now).date().isoformat()


def to_wall_clock(ts_ms: int) -> datetime:
    return _local(ts_ms)
