"""JSON error response builders for the gate and the global exception handlers.

Every denial produced by requestgate uses one envelope:

    {"success": false, "error": {"code": "<CODE>", "message": "<text>"}}

  csrf_failed_response()      → 403 CSRF_VALIDATION_FAILED
  unauthorized_response()     → 401 UNAUTHORIZED
  rate_limited_response(d)    → 429 RATE_LIMIT_EXCEEDED (+ rateLimit body, Retry-After)
  service_starting_response() → 503 SERVICE_STARTING
  internal_error_response()   → 500 INTERNAL_ERROR

Bodies never carry exception text, tokens, or internal configuration.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse

from requestgate.ratelimit.models import RateLimitDecision

# ─── Error codes ──────────────────────────────────────────────────────────────

CSRF_VALIDATION_FAILED = "CSRF_VALIDATION_FAILED"
UNAUTHORIZED = "UNAUTHORIZED"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
SERVICE_STARTING = "SERVICE_STARTING"
INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    status_code: int,
    code: str,
    message: str,
    extra: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build the standard error envelope. ``extra`` adds top-level body keys."""
    content: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message},
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def csrf_failed_response() -> JSONResponse:
    return error_response(403, CSRF_VALIDATION_FAILED, "Invalid or missing CSRF token")


def unauthorized_response() -> JSONResponse:
    return error_response(401, UNAUTHORIZED, "Authentication required")


def rate_limited_response(decision: RateLimitDecision) -> JSONResponse:
    """429 with the reset hint in the message, the body and ``Retry-After``.

    Rate-limit headers (including Retry-After) are attached by the gate's
    finalisation step from the same decision.
    """
    return error_response(
        429,
        RATE_LIMIT_EXCEEDED,
        f"Rate limit exceeded. Please wait {decision.reset_in} seconds "
        "before sending another message.",
        extra={
            "rateLimit": {
                "limit": decision.limit,
                "remaining": 0,
                "resetIn": decision.reset_in,
            }
        },
    )


def service_starting_response() -> JSONResponse:
    return error_response(
        503,
        SERVICE_STARTING,
        "Service is starting up. Retry shortly.",
        headers={"Retry-After": "1"},
    )


def internal_error_response() -> JSONResponse:
    return error_response(500, INTERNAL_ERROR, "An unexpected error occurred")
