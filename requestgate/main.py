"""requestgate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()             → app.state.config
  2. create_http_client()      → app.state.http_client
  3. create_session_verifier() → session provider (Supabase Auth or Null)
  4. create_audit_backend()    → app.state.audit_backend + app.state.audit_sink
  5. create_rate_limiter()     → app.state.rate_limiter (local or shared)
  6. RequestGate(...)          → app.state.gate
  7. app.state.ready = True

Shutdown sequence (reverse):
  ready = False → drain audit writes → close limiter → close audit backend →
  close session provider → close http client

Until step 7 RequestGateMiddleware answers every request with 503.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from requestgate import __version__
from requestgate.audit.factory import create_audit_backend
from requestgate.audit.protocol import AuditBackend
from requestgate.audit.router import router as audit_router
from requestgate.audit.sink import AuditSink
from requestgate.config import Config, load_config
from requestgate.csrf import CsrfGuard
from requestgate.gate.middleware import RequestGateMiddleware
from requestgate.gate.pipeline import RequestGate
from requestgate.gate.routes import RoutePolicy
from requestgate.health import router as health_router
from requestgate.ratelimit.factory import create_rate_limiter
from requestgate.ratelimit.protocol import RateLimiter
from requestgate.responses import error_response, internal_error_response
from requestgate.session.factory import create_http_client, create_session_verifier
from requestgate.session.verifier import SessionVerifier
from requestgate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other imports that may log).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


def build_gate(
    config: Config,
    verifier: SessionVerifier,
    limiter: RateLimiter,
    audit_sink: AuditSink,
) -> RequestGate:
    """Assemble the RequestGate from already-initialised collaborators."""
    csrf = CsrfGuard(
        protected_methods=config.csrf.protected_methods,
        protected_prefixes=config.csrf.protected_prefixes,
        enabled=not config.csrf_validation_disabled,
    )
    return RequestGate(
        verifier=verifier,
        csrf=csrf,
        limiter=limiter,
        audit=audit_sink,
        routes=RoutePolicy.from_config(config),
        secure_cookies=config.is_production,
        csrf_cookie_max_age_s=config.csrf.cookie_max_age_s,
    )


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("requestgate starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on an invalid file, so the process exits
    # non-zero before ready=True is ever set.
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Shared HTTP client ───────────────────────────────────────────
    http_client: httpx.AsyncClient = create_http_client(config.session.provider_timeout_s)
    app.state.http_client = http_client

    # ── Step 3: Session verifier ─────────────────────────────────────────────
    verifier = create_session_verifier(config, http_client)

    # ── Step 4: Audit backend + sink ─────────────────────────────────────────
    # A schema version mismatch raises RuntimeError here and startup is refused.
    audit_backend: AuditBackend = await create_audit_backend(config)
    app.state.audit_backend = audit_backend
    audit_sink = AuditSink(audit_backend)
    app.state.audit_sink = audit_sink

    # ── Step 5: Rate limiter ─────────────────────────────────────────────────
    limiter: RateLimiter = await create_rate_limiter(config)
    app.state.rate_limiter = limiter

    # ── Step 6: Gate ─────────────────────────────────────────────────────────
    app.state.gate = build_gate(config, verifier, limiter, audit_sink)

    # ── Step 7: Mark as ready ────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "requestgate ready",
        environment=config.environment,
        rate_limit_strategy=config.rate_limit.strategy,
        requests_per_hour=config.rate_limit.requests_per_hour,
    )

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("requestgate shutting down...")
    app.state.ready = False

    await audit_sink.drain()
    await limiter.close()
    await audit_backend.close()
    await verifier.provider.close()

    try:
        await http_client.aclose()
    except Exception as exc:
        logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    logger.info("requestgate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the requestgate FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    The module-level `app` is created at import time for uvicorn:
        uvicorn requestgate.main:app --host 127.0.0.1 --port 3000
    """
    # Swagger UI and ReDoc expose the full API schema; DEBUG=true only.
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="requestgate",
        description="Session, CSRF and per-identity quota gating for web applications",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # Initialize ready flag before lifespan; the middleware answers 503
    # to any request that arrives before startup completes.
    application.state.ready = False

    application.add_middleware(RequestGateMiddleware)

    application.include_router(health_router)
    application.include_router(audit_router)

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_response(
            exc.status_code,
            f"HTTP_{exc.status_code}",
            message,
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return internal_error_response()

    return application


app = create_app()
