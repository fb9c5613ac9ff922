"""AuditBackend Protocol + EventFilters dataclass.

AuditEvent is defined in requestgate/audit/models.py.

The protocol deliberately has no update, delete or prune operation: the
audit log is append-only from the application's point of view.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from requestgate.audit.models import AuditEvent
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

MAX_QUERY_LIMIT = 100


# ─── EventFilters ─────────────────────────────────────────────────────────────


@dataclass
class EventFilters:
    """Query filters for AuditBackend.query_events().

    An empty EventFilters() returns the newest 50 events.
    """

    user_id: Optional[str] = None
    """Filter to events for a specific user ID."""
    action: Optional[str] = None
    """Single action filter, e.g. 'security.csrf_failure'."""
    since: Optional[datetime] = None
    """Include events with timestamp >= since (UTC)."""
    limit: int = 50
    """Maximum number of events to return. Clamped to MAX_QUERY_LIMIT."""
    offset: int = 0
    """Number of events to skip."""

    def __post_init__(self) -> None:
        self.limit = max(1, min(self.limit, MAX_QUERY_LIMIT))
        self.offset = max(0, self.offset)


# ─── AuditBackend Protocol ────────────────────────────────────────────────────


@runtime_checkable
class AuditBackend(Protocol):
    """Pluggable audit backend interface.

    Implementations: LocalSQLiteBackend (default), SupabaseBackend, NullAuditBackend.
    Selection via create_audit_backend() (audit/factory.py).

    log_event() is only ever scheduled through AuditSink — never awaited on
    the request path.
    """

    async def log_event(self, event: AuditEvent) -> None:
        """Persist an audit event. Must NEVER raise."""
        ...

    async def query_events(self, filters: EventFilters) -> list[AuditEvent]:
        """Return matching events, newest first."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Clean up connections and resources. Called during graceful shutdown."""
        ...


# ─── NullAuditBackend ────────────────────────────────────────────────────────


class NullAuditBackend:
    """No-op AuditBackend for tests and for wiring before a real backend exists."""

    async def log_event(self, event: AuditEvent) -> None:
        logger.debug("null_audit_event_discarded", event_id=event.event_id, action=event.action)

    async def query_events(self, filters: EventFilters) -> list[AuditEvent]:
        return []

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# Runs at import time and catches protocol drift immediately.
assert isinstance(NullAuditBackend(), AuditBackend), (
    "NullAuditBackend does not satisfy AuditBackend protocol — implementation error"
)
