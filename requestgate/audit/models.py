"""AuditEvent dataclass and type aliases for the requestgate audit log.

The audit log is append-only: events are written once and never updated or
deleted by the application. ``details`` must never carry tokens, cookies or
request bodies — only the small structured facts a reviewer needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from requestgate.utils.ulid import generate_ulid

# ─── Type Aliases ─────────────────────────────────────────────────────────────

AuditAction = Literal[
    # Auth events
    "auth.login",
    "auth.logout",
    "auth.signup",
    "auth.password_reset_request",
    "auth.password_reset_complete",
    "auth.login_failed",
    "auth.oauth_login",
    # Plan events
    "plan.create",
    "plan.view",
    "plan.update",
    "plan.delete",
    "plan.share",
    "plan.export",
    # Security events
    "security.rate_limit_exceeded",
    "security.csrf_failure",
    "security.unauthorized_access",
    "security.suspicious_activity",
    # Account events
    "account.data_export",
    "account.delete_request",
    "account.settings_change",
]

ResourceType = Literal["plan", "conversation", "profile", "auth", "system"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── AuditEvent ───────────────────────────────────────────────────────────────


@dataclass
class AuditEvent:
    """One security-relevant event.

    Field reference:
        Required at construction: action
        Generated when omitted: event_id (ULID), timestamp (UTC now)
        Optional: user_id (None for anonymous callers), resource_type,
                  resource_id, details, ip_address, user_agent

    Usage at call sites:
        audit_sink.record(AuditEvent(action="security.csrf_failure", ...))
        # NEVER: await backend.log_event(event) on the request path
    """

    action: AuditAction
    user_id: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    event_id: str = field(default_factory=generate_ulid)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form used by the audit-events API and the Supabase backend."""
        return {
            "event_id": self.event_id,
            "action": self.action,
            "user_id": self.user_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat(),
        }
