"""Rate limiter factory — strategy and store selection.

  strategy=local   → LocalRateLimiter
  strategy=shared  → SharedRateLimiter over
                       SupabaseRateLimitStore   if SUPABASE_URL + SUPABASE_SERVICE_KEY are set
                       SQLiteRateLimitStore     otherwise (rate_limit.db_path)

The choice is made once at startup. The gate never branches on strategy.
"""

from __future__ import annotations

import os

from requestgate.config import Config
from requestgate.ratelimit.local import LocalRateLimiter
from requestgate.ratelimit.protocol import RateLimiter
from requestgate.ratelimit.shared import SharedRateLimiter
from requestgate.ratelimit.sqlite_store import SQLiteRateLimitStore
from requestgate.ratelimit.supabase_store import SupabaseRateLimitStore
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_SUPABASE_URL = "SUPABASE_URL"
_ENV_SUPABASE_SERVICE_KEY = "SUPABASE_SERVICE_KEY"


async def create_rate_limiter(config: Config) -> RateLimiter:
    """Build and initialize the configured RateLimiter.

    Raises:
        RuntimeError: If the SQLite store finds an incompatible schema version.
    """
    limit = config.rate_limit.requests_per_hour

    if config.rate_limit.strategy == "local":
        logger.info("rate_limiter_selected", strategy="local", limit=limit)
        return LocalRateLimiter(limit=limit)

    supabase_url = os.getenv(_ENV_SUPABASE_URL)
    service_key = os.getenv(_ENV_SUPABASE_SERVICE_KEY)

    if supabase_url and service_key:
        store = SupabaseRateLimitStore(url=supabase_url, key=service_key)
        await store.initialize()
        logger.info("rate_limiter_selected", strategy="shared", store="supabase", limit=limit)
        return SharedRateLimiter(store, limit=limit)

    sqlite_store = SQLiteRateLimitStore(db_path=config.rate_limit.db_path)
    await sqlite_store.initialize()
    logger.info(
        "rate_limiter_selected",
        strategy="shared",
        store="sqlite",
        db_path=config.rate_limit.db_path,
        limit=limit,
    )
    return SharedRateLimiter(sqlite_store, limit=limit)
