"""SupabaseBackend — async Supabase audit backend.

All methods are async with a 5-second timeout (asyncio.wait_for).
ALL exceptions are swallowed and logged — the gate continues regardless.

Environment:
  SUPABASE_URL          — required for SupabaseBackend selection in factory.py
  SUPABASE_SERVICE_KEY  — required (service role key, not the anon key)

Table schema: sql/rate_limits.sql (audit_logs section).
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional

from supabase import create_async_client

from requestgate.audit.models import AuditEvent
from requestgate.audit.protocol import EventFilters
from requestgate.constants import SUPABASE_TIMEOUT_S
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_TABLE_NAME = "audit_logs"


# ─── SupabaseBackend ──────────────────────────────────────────────────────────


class SupabaseBackend:
    """AuditBackend against Supabase's PostgREST API.

    Usage:
        backend = SupabaseBackend(url="https://...", key="service-role-key")
        await backend.initialize()
        results = await backend.query_events(EventFilters(user_id=user_id))
        await backend.close()
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
        """Create the async Supabase client. Connection failures are logged, not raised."""
        try:
            self._client = await asyncio.wait_for(
                create_async_client(self._url, self._key),
                timeout=self._timeout_s,
            )
            logger.info(
                "supabase_backend_initialized",
                table=self._table_name,
                timeout_s=self._timeout_s,
            )
        except Exception as exc:
            logger.error(
                "supabase_backend_init_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._client = None

    async def close(self) -> None:
        self._client = None
        logger.debug("supabase_backend_closed")

    # ── AuditBackend Protocol Methods ─────────────────────────────────────────

    async def log_event(self, event: AuditEvent) -> None:
        if self._client is None:
            return

        try:
            await asyncio.wait_for(
                self._client.table(self._table_name).insert(event.to_dict()).execute(),
                timeout=self._timeout_s,
            )
        except Exception as exc:
            logger.error(
                "audit_write_failed",
                event_id=event.event_id,
                action=event.action,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def query_events(self, filters: EventFilters) -> list[AuditEvent]:
        """Returns [] on timeout, error, or if the client is not initialized."""
        if self._client is None:
            return []

        try:
            query = (
                self._client.table(self._table_name)
                .select("*")
                .order("timestamp", desc=True)
            )
            query = _apply_filters_to_query(query, filters)
            query = query.range(filters.offset, filters.offset + filters.limit - 1)

            response = await asyncio.wait_for(query.execute(), timeout=self._timeout_s)
            if not response.data:
                return []
            return [_dict_to_event(row) for row in response.data]

        except Exception as exc:
            logger.error(
                "supabase_query_events_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

    async def health_check(self) -> bool:
        """Returns True if Supabase answers a minimal query within the timeout."""
        if self._client is None:
            return False
        try:
            await asyncio.wait_for(
                self._client.table(self._table_name).select("event_id").limit(1).execute(),
                timeout=self._timeout_s,
            )
            return True
        except Exception:
            return False


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _apply_filters_to_query(query: Any, filters: EventFilters) -> Any:
    if filters.user_id is not None:
        query = query.eq("user_id", filters.user_id)
    if filters.action is not None:
        query = query.eq("action", filters.action)
    if filters.since is not None:
        query = query.gte("timestamp", filters.since.isoformat())
    return query


def _dict_to_event(row: dict[str, Any]) -> AuditEvent:
    raw_ts = row["timestamp"]
    # PostgREST renders UTC as "+00:00" but older clients may hand back "Z".
    if isinstance(raw_ts, str) and raw_ts.endswith("Z"):
        raw_ts = raw_ts[:-1] + "+00:00"
    return AuditEvent(
        event_id=row["event_id"],
        timestamp=datetime.fromisoformat(raw_ts) if isinstance(raw_ts, str) else raw_ts,
        user_id=row.get("user_id"),
        action=row["action"],
        resource_type=row.get("resource_type"),
        resource_id=row.get("resource_id"),
        details=row.get("details") or {},
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
    )
