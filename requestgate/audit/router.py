"""Audit events API.

    GET /api/audit-events — the caller's own audit events, newest first

The route sits under the protected API prefixes, so the gate has already
resolved the caller by the time the handler runs. Users only ever see rows
where user_id is their own id.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from requestgate.audit.protocol import MAX_QUERY_LIMIT, EventFilters
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["audit"])


@router.get("/api/audit-events")
async def list_audit_events(
    request: Request,
    limit: int = 50,
    offset: int = 0,
    action: Optional[str] = None,
) -> dict:
    """Query params:
        limit:  max events to return (1–100, default 50)
        offset: events to skip (default 0)
        action: optional exact action filter, e.g. ``security.rate_limit_exceeded``
    """
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    backend = request.app.state.audit_backend
    events = await backend.query_events(EventFilters(
        user_id=user.id,
        action=action,
        limit=max(1, min(limit, MAX_QUERY_LIMIT)),
        offset=max(0, offset),
    ))

    return {"success": True, "data": [event.to_dict() for event in events]}
