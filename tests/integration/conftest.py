"""Fixtures for gate integration tests.

``make_app`` builds an application the way the lifespan would, but with
in-memory collaborators, and marks it ready. ASGITransport does not run the
lifespan, so app.state is populated here directly.

Downstream routes added for the tests:
    GET  /               public page
    GET  /dashboard      protected page
    GET  /login          auth page
    POST /api/chat       protected + metered API
    GET  /api/plan       protected API
    POST /api/public     unprotected API (CSRF still applies)
    DELETE /api/documents/{name}  protected API whose names can look like files
    GET  /api/boom       unprotected API whose handler raises
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from requestgate.audit.models import AuditEvent
from requestgate.audit.protocol import AuditBackend, EventFilters
from requestgate.audit.sink import AuditSink
from requestgate.config import Config
from requestgate.main import build_gate, create_app
from requestgate.ratelimit.local import LocalRateLimiter
from requestgate.ratelimit.protocol import RateLimiter
from requestgate.session.models import SessionArtifacts, SessionCredentials, SessionUser
from requestgate.session.verifier import SessionVerifier


class RecordingAuditBackend:
    """AuditBackend keeping events in a list."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def log_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    async def query_events(self, filters: EventFilters) -> list[AuditEvent]:
        matching = [
            e for e in self.events
            if (filters.user_id is None or e.user_id == filters.user_id)
            and (filters.action is None or e.action == filters.action)
        ]
        matching.sort(key=lambda e: e.timestamp, reverse=True)
        return matching[filters.offset:filters.offset + filters.limit]

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class TokenSessionProvider:
    """SessionProvider resolving access tokens from a fixed table."""

    def __init__(
        self,
        users: Optional[dict[str, SessionUser]] = None,
        artifacts: Optional[SessionArtifacts] = None,
    ) -> None:
        self.users = users or {}
        self.artifacts = artifacts
        self.refresh_calls = 0

    async def get_current_user(self, credentials: SessionCredentials) -> Optional[SessionUser]:
        return self.users.get(credentials.access_token or "")

    async def refresh_session(self, credentials: SessionCredentials) -> Optional[SessionArtifacts]:
        self.refresh_calls += 1
        return self.artifacts

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


def _add_test_routes(application: FastAPI) -> None:
    @application.get("/")
    async def home() -> dict:
        return {"page": "home"}

    @application.get("/dashboard")
    async def dashboard(request: Request) -> dict:
        return {"page": "dashboard", "identity": request.state.identity}

    @application.get("/login")
    async def login() -> dict:
        return {"page": "login"}

    @application.post("/api/chat")
    async def chat(request: Request) -> dict:
        return {"success": True, "identity": request.state.identity}

    @application.get("/api/plan")
    async def plan() -> dict:
        return {"success": True}

    @application.post("/api/public")
    async def public(request: Request) -> dict:
        return {"success": True, "identity": request.state.identity}

    @application.delete("/api/documents/{name}")
    async def delete_document(name: str) -> dict:
        return {"success": True, "deleted": name}

    @application.get("/api/boom")
    async def boom() -> dict:
        raise ValueError("handler bug")


@pytest.fixture
def audit_backend() -> RecordingAuditBackend:
    return RecordingAuditBackend()


@pytest.fixture
def make_app(audit_backend: RecordingAuditBackend) -> Callable[..., FastAPI]:
    def _make(
        config: Optional[Config] = None,
        provider: Any = None,
        limiter: Optional[RateLimiter] = None,
        backend: Optional[AuditBackend] = None,
        ready: bool = True,
    ) -> FastAPI:
        if config is None:
            config = Config.defaults()
            config.environment = "test"
        audit = backend if backend is not None else audit_backend
        sink = AuditSink(audit)
        verifier = SessionVerifier(provider or TokenSessionProvider())
        if limiter is None:
            limiter = LocalRateLimiter(limit=config.rate_limit.requests_per_hour)

        application = create_app()
        _add_test_routes(application)
        application.state.config = config
        application.state.audit_backend = audit
        application.state.audit_sink = sink
        application.state.rate_limiter = limiter
        application.state.gate = build_gate(config, verifier, limiter, sink)
        application.state.ready = ready
        return application

    return _make


def client_for(application: FastAPI, raise_app_exceptions: bool = True) -> AsyncClient:
    transport = ASGITransport(app=application, raise_app_exceptions=raise_app_exceptions)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def client_factory() -> Callable[..., AsyncClient]:
    return client_for


def cookie_header(**cookies: str) -> dict[str, str]:
    return {"cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


@pytest.fixture
def cookies() -> Callable[..., dict[str, str]]:
    return cookie_header


@pytest.fixture
def session_provider() -> type[TokenSessionProvider]:
    return TokenSessionProvider
