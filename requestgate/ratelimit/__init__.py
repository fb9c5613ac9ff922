"""Per-identity hourly rate limiting.

Layout:
    models.py         — RateLimitDecision
    window.py         — clock-aligned window arithmetic
    protocol.py       — RateLimiter + RateLimitStore Protocols, RateLimitStoreError
    local.py          — LocalRateLimiter (single process)
    shared.py         — SharedRateLimiter (store-backed, fail-open)
    sqlite_store.py   — SQLiteRateLimitStore (aiosqlite)
    supabase_store.py — SupabaseRateLimitStore (supabase)
    factory.py        — create_rate_limiter()
"""

from requestgate.ratelimit.factory import create_rate_limiter
from requestgate.ratelimit.local import LocalRateLimiter
from requestgate.ratelimit.models import RateLimitDecision
from requestgate.ratelimit.protocol import RateLimiter, RateLimitStore, RateLimitStoreError
from requestgate.ratelimit.shared import SharedRateLimiter

__all__ = [
    "LocalRateLimiter",
    "RateLimitDecision",
    "RateLimitStore",
    "RateLimitStoreError",
    "RateLimiter",
    "SharedRateLimiter",
    "create_rate_limiter",
]
