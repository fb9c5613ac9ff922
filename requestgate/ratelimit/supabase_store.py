"""SupabaseRateLimitStore — RateLimitStore over Supabase (PostgREST).

Every call is wrapped in asyncio.wait_for(timeout=5s). Unlike the audit
backend, failures are NOT swallowed here: they are raised as
RateLimitStoreError so SharedRateLimiter can apply its fail-open policy.

Table and function (see sql/rate_limits.sql):
    rate_limits(user_id, window_start, request_count)
    increment_rate_limit(p_user_id, p_window_start) → integer
The function is a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING, which
is the atomic upsert-increment the limiter's race handling relies on.

Environment:
  SUPABASE_URL          — project URL
  SUPABASE_SERVICE_KEY  — service role key (the table is not client-writable)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import create_async_client

from requestgate.constants import SUPABASE_TIMEOUT_S
from requestgate.ratelimit.protocol import RateLimitStoreError
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_TABLE_NAME = "rate_limits"
_INCREMENT_FUNCTION = "increment_rate_limit"


def _window_key(window_start: datetime) -> str:
    return window_start.astimezone(timezone.utc).isoformat()


def _count_from_rpc(data: Any) -> int:
    """Normalise the RPC payload: a bare integer, or a one-row list."""
    if isinstance(data, bool):
        raise RateLimitStoreError(f"unexpected increment payload: {data!r}")
    if isinstance(data, int):
        return data
    if isinstance(data, list) and len(data) == 1:
        row = data[0]
        if isinstance(row, dict):
            value = row.get(_INCREMENT_FUNCTION, row.get("request_count"))
            if isinstance(value, int):
                return value
        elif isinstance(row, int):
            return row
    raise RateLimitStoreError(f"unexpected increment payload: {data!r}")


class SupabaseRateLimitStore:
    """Shared counters for multi-instance deployments.

    Usage:
        store = SupabaseRateLimitStore(url="https://...", key="service-role-key")
        await store.initialize()
        new_count = await store.increment(user_id, window_start)
    """

    def __init__(
        self,
        url: str,
        key: str,
        table_name: str = _TABLE_NAME,
        timeout_s: float = SUPABASE_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._key = key
        self._table_name = table_name
        self._timeout_s = timeout_s
        self._client: Optional[Any] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the async Supabase client.

        A failed connection is logged, not raised: the store then reports
        RateLimitStoreError on every call and the limiter fails open.
        """
        try:
            self._client = await asyncio.wait_for(
                create_async_client(self._url, self._key),
                timeout=self._timeout_s,
            )
            logger.info(
                "supabase_rate_limit_store_initialized",
                table=self._table_name,
                timeout_s=self._timeout_s,
            )
        except Exception as exc:
            logger.error(
                "supabase_rate_limit_store_init_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._client = None

    async def close(self) -> None:
        self._client = None
        logger.debug("supabase_rate_limit_store_closed")

    # ── RateLimitStore Protocol Methods ───────────────────────────────────────

    async def count_since(self, identity: str, window_start: datetime) -> int:
        client = self._require_client()
        try:
            response = await asyncio.wait_for(
                client.table(self._table_name)
                .select("request_count")
                .eq("user_id", identity)
                .gte("window_start", _window_key(window_start))
                .execute(),
                timeout=self._timeout_s,
            )
        except Exception as exc:
            raise RateLimitStoreError(f"{type(exc).__name__}: {exc}") from exc
        return sum(int(row.get("request_count") or 0) for row in (response.data or []))

    async def increment(self, identity: str, window_start: datetime) -> int:
        client = self._require_client()
        try:
            response = await asyncio.wait_for(
                client.rpc(
                    _INCREMENT_FUNCTION,
                    {"p_user_id": identity, "p_window_start": _window_key(window_start)},
                ).execute(),
                timeout=self._timeout_s,
            )
        except Exception as exc:
            raise RateLimitStoreError(f"{type(exc).__name__}: {exc}") from exc
        return _count_from_rpc(response.data)

    async def health_check(self) -> bool:
        """Returns True if Supabase answers a minimal query within the timeout."""
        if self._client is None:
            return False
        try:
            await asyncio.wait_for(
                self._client.table(self._table_name).select("user_id").limit(1).execute(),
                timeout=self._timeout_s,
            )
            return True
        except Exception as exc:
            logger.warning("supabase_rate_limit_health_failed", error=str(exc))
            return False

    def _require_client(self) -> Any:
        if self._client is None:
            raise RateLimitStoreError("supabase client not initialized")
        return self._client
