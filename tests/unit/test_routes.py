"""Unit tests for requestgate.gate.routes — route classification."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from requestgate.config import Config
from requestgate.gate.routes import RoutePolicy, matches_prefix


@pytest.fixture
def policy() -> RoutePolicy:
    return RoutePolicy.from_config(Config.defaults())


class TestMatchesPrefix:
    @pytest.mark.parametrize(
        "path, prefix, expected",
        [
            ("/plan", "/plan", True),
            ("/plan/123", "/plan", True),
            ("/planner", "/plan", False),
            ("/api/chat", "/api/", True),
            ("/api", "/api/", False),
            ("/api/chat/stream", "/api/chat", True),
            ("/api/chatter", "/api/chat", False),
        ],
    )
    def test_segment_aware(self, path: str, prefix: str, expected: bool) -> None:
        assert matches_prefix(path, prefix) is expected


class TestRoutePolicy:
    def test_protected_pages(self, policy: RoutePolicy) -> None:
        assert policy.is_protected_page("/dashboard")
        assert policy.is_protected_page("/settings/profile")
        assert not policy.is_protected_page("/")
        assert not policy.is_protected_page("/pricing")

    def test_protected_api(self, policy: RoutePolicy) -> None:
        assert policy.is_protected_api("/api/chat")
        assert policy.is_protected_api("/api/audit-events")
        assert not policy.is_protected_api("/api/health")

    def test_auth_pages(self, policy: RoutePolicy) -> None:
        assert policy.is_auth_page("/login")
        assert policy.is_auth_page("/signup")
        assert not policy.is_auth_page("/logout")

    def test_metered(self, policy: RoutePolicy) -> None:
        assert policy.is_metered("/api/chat")
        assert not policy.is_metered("/api/plan")

    def test_api(self, policy: RoutePolicy) -> None:
        assert policy.is_api("/api/health")
        assert not policy.is_api("/dashboard")

    @pytest.mark.parametrize(
        "path",
        ["/_next/static/chunk.js", "/_next/image?url=x", "/favicon.ico", "/logo.svg", "/img/a.webp"],
    )
    def test_static_assets_exempt(self, policy: RoutePolicy, path: str) -> None:
        assert policy.is_exempt(path)

    @pytest.mark.parametrize("path", ["/dashboard", "/api/chat", "/favicon.ico.html"])
    def test_application_paths_not_exempt(self, policy: RoutePolicy, path: str) -> None:
        assert not policy.is_exempt(path)

    @pytest.mark.parametrize(
        "path", ["/api/documents/photo.png", "/api/chat/avatar.svg", "/api/plan/x.webp"]
    )
    def test_api_paths_with_image_suffix_not_exempt(self, policy: RoutePolicy, path: str) -> None:
        assert not policy.is_exempt(path)

    def test_login_redirect_carries_path(self, policy: RoutePolicy) -> None:
        location = policy.login_redirect("/plan/42")
        parts = urlsplit(location)
        assert parts.path == "/login"
        assert parse_qs(parts.query) == {"redirectTo": ["/plan/42"]}

    def test_custom_routes_from_config(self) -> None:
        config = Config.defaults()
        config.routes.protected_pages = ["/account"]
        config.routes.login_path = "/signin"
        config.rate_limit.metered_prefixes = ["/api/generate"]
        policy = RoutePolicy.from_config(config)
        assert policy.is_protected_page("/account")
        assert not policy.is_protected_page("/dashboard")
        assert policy.is_metered("/api/generate")
        assert policy.login_redirect("/account").startswith("/signin?")
