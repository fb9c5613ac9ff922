"""AuditSink — fire-and-forget recording of security events.

The request path calls ``sink.record(event)`` and moves on. The write runs as
its own task; the sink keeps a strong reference to it until it finishes (the
event loop holds tasks only weakly) and logs any failure. Nothing the backend
does — slow, failing or unreachable — can change the response a caller gets.

Shutdown and tests call ``await sink.drain()`` to wait for outstanding writes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

from requestgate.audit.models import AuditEvent
from requestgate.audit.protocol import AuditBackend
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class AuditContext:
    ip_address: str
    user_agent: Optional[str]


def audit_context(request: Request) -> AuditContext:
    """Client IP (first x-forwarded-for hop, then x-real-ip) and user agent."""
    forwarded = request.headers.get("x-forwarded-for")
    ip = None
    if forwarded:
        ip = forwarded.split(",")[0].strip() or None
    if ip is None:
        ip = request.headers.get("x-real-ip") or _UNKNOWN_IP
    return AuditContext(ip_address=ip, user_agent=request.headers.get("user-agent"))


class AuditSink:
    """Schedules backend writes without awaiting them."""

    def __init__(self, backend: AuditBackend) -> None:
        self._backend = backend
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def backend(self) -> AuditBackend:
        return self._backend

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, event: AuditEvent) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._write(event))
        except RuntimeError:
            logger.warning("audit_event_dropped_no_loop", event_id=event.event_id, action=event.action)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, event: AuditEvent) -> None:
        try:
            await self._backend.log_event(event)
        except Exception as exc:
            logger.error(
                "audit_write_failed",
                event_id=event.event_id,
                action=event.action,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
