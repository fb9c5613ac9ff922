"""Unit tests for requestgate.gate.headers — cookies and headers written by the gate.

Verifies:
  - Session cookies are httpOnly, SameSite=Lax, path=/, Secure only when asked
  - Access cookie max-age follows expires_at; refresh cookie lives 30 days
  - CSRF cookie is NOT httpOnly
  - API security headers; a handler's Cache-Control survives only if it has no-store
  - Rate-limit headers and X-Request-ID
"""

from __future__ import annotations

import pytest
from starlette.responses import Response

from requestgate.gate.headers import (
    apply_rate_limit_headers,
    apply_request_id,
    apply_security_headers,
    set_csrf_cookie,
    set_session_cookies,
)
from requestgate.ratelimit.models import RateLimitDecision
from requestgate.session.models import SessionArtifacts

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _set_cookies(response: Response) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for name, value in response.raw_headers:
        if name == b"set-cookie":
            decoded = value.decode()
            cookies[decoded.split("=", 1)[0]] = decoded
    return cookies


# ─── Cookies ──────────────────────────────────────────────────────────────────


class TestSessionCookies:
    def test_attributes(self) -> None:
        response = Response()
        artifacts = SessionArtifacts(access_token="acc", refresh_token="ref", expires_at=1_000_600)
        set_session_cookies(response, artifacts, secure=True, now=1_000_000)

        cookies = _set_cookies(response)
        access = cookies["session_token"]
        refresh = cookies["session_refresh_token"]

        assert access.startswith("session_token=acc;")
        assert "Max-Age=600" in access
        assert "HttpOnly" in access
        assert "SameSite=lax" in access
        assert "Path=/" in access
        assert "Secure" in access

        assert refresh.startswith("session_refresh_token=ref;")
        assert f"Max-Age={60 * 60 * 24 * 30}" in refresh
        assert "HttpOnly" in refresh

    def test_insecure_in_development(self) -> None:
        response = Response()
        set_session_cookies(
            response, SessionArtifacts(access_token="a", refresh_token="r"), secure=False
        )
        access = _set_cookies(response)["session_token"]
        assert "Secure" not in access
        assert "Max-Age" not in access

    def test_past_expiry_clamps_to_zero(self) -> None:
        response = Response()
        artifacts = SessionArtifacts(access_token="a", refresh_token="r", expires_at=10)
        set_session_cookies(response, artifacts, secure=False, now=100)
        assert "Max-Age=0" in _set_cookies(response)["session_token"]


class TestCsrfCookie:
    def test_readable_by_scripts(self) -> None:
        response = Response()
        set_csrf_cookie(response, "f" * 64, secure=True, max_age=86400)
        cookie = _set_cookies(response)["csrf_token"]
        assert cookie.startswith("csrf_token=" + "f" * 64)
        assert "HttpOnly" not in cookie
        assert "Max-Age=86400" in cookie
        assert "SameSite=lax" in cookie
        assert "Secure" in cookie


# ─── Headers ──────────────────────────────────────────────────────────────────


class TestSecurityHeaders:
    def test_applied(self) -> None:
        response = Response()
        apply_security_headers(response)
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store, max-age=0"

    def test_handler_cache_control_kept(self) -> None:
        response = Response(headers={"Cache-Control": "no-store, no-cache, must-revalidate"})
        apply_security_headers(response)
        assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"

    @pytest.mark.parametrize("weak", ["public, max-age=3600", "private", "no-cache"])
    def test_handler_cache_control_without_no_store_replaced(self, weak: str) -> None:
        response = Response(headers={"Cache-Control": weak})
        apply_security_headers(response)
        assert response.headers["Cache-Control"] == "no-store, max-age=0"

    def test_frame_options_forced(self) -> None:
        response = Response(headers={"X-Frame-Options": "SAMEORIGIN"})
        apply_security_headers(response)
        assert response.headers["X-Frame-Options"] == "DENY"


class TestRateLimitAndRequestId:
    def test_rate_limit_headers(self) -> None:
        response = Response()
        apply_rate_limit_headers(response, RateLimitDecision(True, 4, 90, 5))
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert response.headers["X-RateLimit-Reset"] == "90"
        assert "Retry-After" not in response.headers

    def test_denied_adds_retry_after(self) -> None:
        response = Response()
        apply_rate_limit_headers(response, RateLimitDecision.denied(5, 90))
        assert response.headers["Retry-After"] == "90"

    def test_request_id(self) -> None:
        response = Response()
        apply_request_id(response, "01HZZZZZZZZZZZZZZZZZZZZZZZ")
        assert response.headers["X-Request-ID"] == "01HZZZZZZZZZZZZZZZZZZZZZZZ"
