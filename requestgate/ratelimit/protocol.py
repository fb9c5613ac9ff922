"""RateLimiter + RateLimitStore Protocols.

RateLimiter is the one capability the gate depends on:
    decision = await limiter.check(identity)

Two implementations, chosen once at construction by rate_limit.strategy:
    LocalRateLimiter  — in-process counters (single instance only)
    SharedRateLimiter — counters in a RateLimitStore (many instances)

RateLimitStore is the network-addressable contract behind SharedRateLimiter.
Both of its operations are safe to retry. All mutual exclusion for a
(identity, window_start) counter is delegated to the store's upsert-increment.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from requestgate.ratelimit.models import RateLimitDecision


class RateLimitStoreError(Exception):
    """The shared store failed to answer. The limiter fails open on this."""


@runtime_checkable
class RateLimiter(Protocol):
    """Per-identity admission control."""

    @property
    def limit(self) -> int:
        ...

    async def check(self, identity: str) -> RateLimitDecision:
        """Decide admission for ``identity``.

        Increments the window counter only when the decision is allowed.
        Never raises for a denial, and never raises for a store failure.
        """
        ...

    async def health_check(self) -> bool:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class RateLimitStore(Protocol):
    """Durable (identity, window_start) → count store."""

    async def count_since(self, identity: str, window_start: datetime) -> int:
        """Requests recorded for ``identity`` in windows starting at or after ``window_start``.

        Raises:
            RateLimitStoreError: On any store failure.
        """
        ...

    async def increment(self, identity: str, window_start: datetime) -> int:
        """Atomically add one to the (identity, window_start) counter; return the new count.

        Raises:
            RateLimitStoreError: On any store failure.
        """
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is reachable. Must not raise."""
        ...

    async def close(self) -> None:
        ...
