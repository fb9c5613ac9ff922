"""Health endpoint for requestgate.

  GET /api/health — public; polled by deployment probes and uptime monitors

Production returns the minimum (status + timestamp) to avoid handing out
reconnaissance. Other environments add the environment name and a boolean
per collaborator. Requests before startup finishes never reach this handler:
RequestGateMiddleware answers them with 503 SERVICE_STARTING.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])

_NO_CACHE = {"Cache-Control": "no-store, no-cache, must-revalidate"}


@router.get("/api/health")
async def health(request: Request) -> JSONResponse:
    """Response body (production):
        {"status": "ok", "timestamp": "<ISO 8601>"}

    Response body (development / test):
        {
          "status": "healthy",
          "timestamp": "<ISO 8601>",
          "environment": "development",
          "checks": {"session_provider": bool, "rate_limit_store": bool, "audit_backend": bool}
        }
    """
    now = datetime.now(timezone.utc).isoformat()
    config = request.app.state.config

    if config.is_production:
        return JSONResponse({"status": "ok", "timestamp": now}, headers=_NO_CACHE)

    gate = request.app.state.gate
    body: dict[str, Any] = {
        "status": "healthy",
        "timestamp": now,
        "environment": config.environment,
        "checks": {
            "session_provider": await gate.verifier.provider.health_check(),
            "rate_limit_store": await gate.limiter.health_check(),
            "audit_backend": await request.app.state.audit_backend.health_check(),
        },
    }
    return JSONResponse(body, headers=_NO_CACHE)
