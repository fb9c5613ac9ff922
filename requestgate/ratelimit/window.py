"""Fixed hourly window arithmetic.

Windows are aligned to wall-clock hour boundaries in UTC: the window for
14:00–15:00 is keyed by 14:00:00. ``reset_in`` counts down to the next
boundary, so a burst just before the hour gets a short reset_in and a fresh
quota immediately after.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from requestgate.constants import WINDOW_SECONDS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(now: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already.
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def window_start(now: datetime) -> datetime:
    """Floor ``now`` to the start of its hour (UTC)."""
    return _as_utc(now).replace(minute=0, second=0, microsecond=0)


def next_window_start(now: datetime) -> datetime:
    return window_start(now) + timedelta(seconds=WINDOW_SECONDS)


def seconds_until(deadline: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` to ``deadline``, rounded up, at least 1."""
    delta = (_as_utc(deadline) - _as_utc(now)).total_seconds()
    return max(1, math.ceil(delta))


def seconds_until_reset(now: datetime) -> int:
    """Seconds to the next hour boundary, in [1, WINDOW_SECONDS]."""
    return seconds_until(next_window_start(now), now)
