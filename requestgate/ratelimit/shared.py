"""SharedRateLimiter — fixed-window counters held in a RateLimitStore.

Algorithm per check(identity):
  1. count = store.count_since(identity, window_start)
       store error → fail open, full quota, resetIn = one window
  2. count >= limit → deny (nothing consumed)
  3. new_count = store.increment(identity, window_start)
       store error → fail open, remaining = max(1, limit - count - 1)
  4. new_count > limit → deny: another instance took the last slot between
     steps 1 and 3. Otherwise admit with remaining = limit - new_count.

Step 4 is what makes concurrent requests at the boundary safe: the store's
increment is atomic, so exactly one racer sees new_count == limit and every
other racer sees a larger value. There is no application-level lock.

Fail-open is deliberate policy: an unreachable store must not take the
application down. Every fail-open is logged at ERROR.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from requestgate.constants import WINDOW_SECONDS
from requestgate.ratelimit.models import RateLimitDecision
from requestgate.ratelimit.protocol import RateLimitStore
from requestgate.ratelimit.window import seconds_until_reset, utcnow, window_start
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)


class SharedRateLimiter:
    """Per-identity hourly ceiling enforced through a shared store.

    Usage:
        limiter = SharedRateLimiter(store, limit=20)
        decision = await limiter.check(user_id)
    """

    def __init__(
        self,
        store: RateLimitStore,
        limit: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._limit = limit
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def store(self) -> RateLimitStore:
        return self._store

    async def check(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        start = window_start(now)
        reset_in = seconds_until_reset(now)

        try:
            count = await self._store.count_since(identity, start)
        except Exception as exc:
            logger.error(
                "rate_limit_store_error",
                phase="count",
                identity=identity,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return RateLimitDecision(
                allowed=True,
                remaining=self._limit,
                reset_in=WINDOW_SECONDS,
                limit=self._limit,
            )

        if count >= self._limit:
            return RateLimitDecision.denied(self._limit, reset_in)

        try:
            new_count = await self._store.increment(identity, start)
        except Exception as exc:
            logger.error(
                "rate_limit_store_error",
                phase="increment",
                identity=identity,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return RateLimitDecision(
                allowed=True,
                remaining=max(1, self._limit - count - 1),
                reset_in=reset_in,
                limit=self._limit,
            )

        if new_count > self._limit:
            logger.info(
                "rate_limit_boundary_race_denied",
                identity=identity,
                count=new_count,
                limit=self._limit,
            )
            return RateLimitDecision.denied(self._limit, reset_in)

        return RateLimitDecision(
            allowed=True,
            remaining=max(0, self._limit - new_count),
            reset_in=reset_in,
            limit=self._limit,
        )

    async def health_check(self) -> bool:
        return await self._store.health_check()

    async def close(self) -> None:
        await self._store.close()
