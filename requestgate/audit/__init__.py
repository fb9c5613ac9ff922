"""requestgate audit package.

    from requestgate.audit import AuditEvent, AuditBackend, AuditSink, EventFilters

Layout:
    models.py           — AuditEvent + type aliases (AuditAction, ResourceType)
    protocol.py         — AuditBackend Protocol + EventFilters + NullAuditBackend
    sqlite_backend.py   — LocalSQLiteBackend (aiosqlite, WAL mode, PRAGMA version guard)
    supabase_backend.py — SupabaseBackend (async client, 5s timeout, exception swallowing)
    factory.py          — create_audit_backend() — backend selection by env vars
    sink.py             — AuditSink (fire-and-forget) + audit_context()
    router.py           — GET /api/audit-events
"""

from requestgate.audit.models import AuditAction, AuditEvent, ResourceType
from requestgate.audit.protocol import AuditBackend, EventFilters, NullAuditBackend
from requestgate.audit.sink import AuditContext, AuditSink, audit_context

__all__ = [
    "AuditAction",
    "AuditBackend",
    "AuditContext",
    "AuditEvent",
    "AuditSink",
    "EventFilters",
    "NullAuditBackend",
    "ResourceType",
    "audit_context",
]
