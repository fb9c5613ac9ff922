"""LocalRateLimiter — in-process fixed-window counters.

Only correct when a single process serves all traffic: counters are not
shared between workers or instances and are lost on restart. Use the shared
strategy for anything else (config warns when this runs in production).

check() contains no await, so on a single event loop the read-modify-write of
one identity's counter cannot interleave with another request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from requestgate.ratelimit.models import RateLimitDecision
from requestgate.ratelimit.window import next_window_start, seconds_until, utcnow
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

# Expired entries are swept once the map grows past this many identities.
_SWEEP_THRESHOLD = 10_000


@dataclass
class _WindowEntry:
    count: int
    reset_at: datetime


class LocalRateLimiter:
    """Per-identity hourly ceiling held in a dict.

    Args:
        limit: Admissions allowed per identity per clock-aligned hour.
        clock: Returns the current UTC datetime. Injected by tests.
    """

    def __init__(self, limit: int, clock: Callable[[], datetime] = utcnow) -> None:
        self._limit = limit
        self._clock = clock
        self._entries: dict[str, _WindowEntry] = {}

    @property
    def limit(self) -> int:
        return self._limit

    async def check(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        entry = self._entries.get(identity)

        if entry is None or now >= entry.reset_at:
            if len(self._entries) >= _SWEEP_THRESHOLD:
                self._sweep(now)
            entry = _WindowEntry(count=0, reset_at=next_window_start(now))
            self._entries[identity] = entry

        reset_in = seconds_until(entry.reset_at, now)

        if entry.count >= self._limit:
            return RateLimitDecision.denied(self._limit, reset_in)

        entry.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=self._limit - entry.count,
            reset_in=reset_in,
            limit=self._limit,
        )

    def reset(self) -> None:
        """Forget every counter (process restart semantics)."""
        self._entries.clear()

    def _sweep(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_at]
        for key in expired:
            del self._entries[key]
        logger.debug("local_rate_limit_swept", removed=len(expired), kept=len(self._entries))

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
