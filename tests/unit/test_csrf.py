"""Unit tests for requestgate.csrf — the double-submit guard.

Verifies:
  - Tokens are 64 lowercase hex characters and unique
  - ensure_token() reuses an existing cookie, mints one otherwise
  - requires_validation(): state-changing methods on protected prefixes only
  - validate(): header and cookie must both be present and byte-identical
  - A disabled guard never requires validation
"""

from __future__ import annotations

import re
from typing import Optional

import pytest
from starlette.requests import Request

from requestgate.constants import DEFAULT_CSRF_METHODS, DEFAULT_CSRF_PREFIXES
from requestgate.csrf import CsrfGuard, generate_csrf_token

TOKEN = "a" * 64

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _make_request(cookie: Optional[str] = None, header: Optional[str] = None) -> Request:
    headers = []
    if cookie is not None:
        headers.append((b"cookie", f"csrf_token={cookie}".encode()))
    if header is not None:
        headers.append((b"x-csrf-token", header.encode()))
    return Request({"type": "http", "method": "POST", "path": "/api/chat", "headers": headers})


@pytest.fixture
def guard() -> CsrfGuard:
    return CsrfGuard(DEFAULT_CSRF_METHODS, DEFAULT_CSRF_PREFIXES)


# ─── Token generation ─────────────────────────────────────────────────────────


class TestTokenGeneration:
    def test_format(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{64}", generate_csrf_token())

    def test_unique(self) -> None:
        assert len({generate_csrf_token() for _ in range(200)}) == 200

    def test_existing_cookie_reused(self, guard: CsrfGuard) -> None:
        state = guard.ensure_token(_make_request(cookie=TOKEN))
        assert state.token == TOKEN
        assert state.issued is False

    def test_missing_cookie_mints_token(self, guard: CsrfGuard) -> None:
        state = guard.ensure_token(_make_request())
        assert state.issued is True
        assert len(state.token) == 64


# ─── requires_validation ──────────────────────────────────────────────────────


class TestRequiresValidation:
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH", "post"])
    def test_state_changing_api_methods(self, guard: CsrfGuard, method: str) -> None:
        assert guard.requires_validation(method, "/api/chat") is True

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_safe_methods_skipped(self, guard: CsrfGuard, method: str) -> None:
        assert guard.requires_validation(method, "/api/chat") is False

    def test_non_api_paths_skipped(self, guard: CsrfGuard) -> None:
        assert guard.requires_validation("POST", "/login") is False

    def test_disabled_guard(self) -> None:
        guard = CsrfGuard(DEFAULT_CSRF_METHODS, DEFAULT_CSRF_PREFIXES, enabled=False)
        assert guard.enabled is False
        assert guard.requires_validation("POST", "/api/chat") is False


# ─── validate ─────────────────────────────────────────────────────────────────


class TestValidate:
    def test_matching_pair(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(cookie=TOKEN, header=TOKEN)) is True

    def test_missing_header(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(cookie=TOKEN)) is False

    def test_missing_cookie(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(header=TOKEN)) is False

    def test_both_missing(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request()) is False

    def test_mismatch(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(cookie=TOKEN, header="b" * 64)) is False

    def test_comparison_is_case_sensitive(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(cookie=TOKEN, header=TOKEN.upper())) is False

    def test_prefix_of_token_rejected(self, guard: CsrfGuard) -> None:
        assert guard.validate(_make_request(cookie=TOKEN, header=TOKEN[:32])) is False
