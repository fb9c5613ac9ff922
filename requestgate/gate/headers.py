"""Response finalisation helpers: cookies and headers written by the gate."""

from __future__ import annotations

import time
from typing import Optional

from starlette.responses import Response

from requestgate.constants import (
    API_SECURITY_HEADERS,
    CSRF_COOKIE,
    REQUEST_ID_HEADER,
    SESSION_COOKIE,
    SESSION_REFRESH_COOKIE,
    SESSION_REFRESH_COOKIE_MAX_AGE_S,
)
from requestgate.ratelimit.models import RateLimitDecision
from requestgate.session.models import SessionArtifacts


def set_session_cookies(
    response: Response,
    artifacts: SessionArtifacts,
    secure: bool,
    now: Optional[float] = None,
) -> None:
    """Write refreshed session artifacts back to the client (httpOnly)."""
    access_max_age: Optional[int] = None
    if artifacts.expires_at is not None:
        current = time.time() if now is None else now
        access_max_age = max(0, int(artifacts.expires_at - current))

    response.set_cookie(
        SESSION_COOKIE,
        artifacts.access_token,
        max_age=access_max_age,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )
    response.set_cookie(
        SESSION_REFRESH_COOKIE,
        artifacts.refresh_token,
        max_age=SESSION_REFRESH_COOKIE_MAX_AGE_S,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def set_csrf_cookie(response: Response, token: str, secure: bool, max_age: int) -> None:
    # httponly=False: client scripts must read the cookie to echo it in x-csrf-token.
    response.set_cookie(
        CSRF_COOKIE,
        token,
        max_age=max_age,
        path="/",
        secure=secure,
        httponly=False,
        samesite="lax",
    )


def apply_security_headers(response: Response) -> None:
    """Fixed API headers. A handler Cache-Control is kept only if it already forbids storing."""
    for name, value in API_SECURITY_HEADERS.items():
        if name == "Cache-Control" and "no-store" in response.headers.get(name, ""):
            continue
        response.headers[name] = value


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    for name, value in decision.headers().items():
        response.headers[name] = value


def apply_request_id(response: Response, request_id: str) -> None:
    response.headers[REQUEST_ID_HEADER] = request_id
