"""RequestGate — the per-request gating pipeline.

Strict order, each step able to short-circuit:

  1. Session: resolve identity. Refreshed artifacts are written to whatever
     response leaves the gate, denials included.
  2. CSRF issue: no csrf_token cookie → mint one (every request, even GET).
  3. CSRF validate: state-changing method on a protected prefix → header and
     cookie must match, else 403 CSRF_VALIDATION_FAILED. Checked before any
     auth decision, so an anonymous caller sees the CSRF failure.
  4. Route class: authenticated on an auth page → redirect home; anonymous on
     a protected page → redirect to login?redirectTo=<path>; anonymous on a
     protected API route → 401 UNAUTHORIZED.
  5. Quota: metered path → limiter.check(identity); denied → 429.
  6. Finalise: session cookies, CSRF cookie, API security headers, rate-limit
     headers, X-Request-ID.
  7. Forward to the downstream handler (when nothing above short-circuited).
     A handler exception becomes a 500 INTERNAL_ERROR that is still finalised.

Security events (CSRF failure, unauthorized access, quota exhaustion) go to
the AuditSink without being awaited.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from requestgate.audit.models import AuditAction, AuditEvent
from requestgate.audit.sink import AuditSink, audit_context
from requestgate.csrf import CsrfGuard, CsrfState
from requestgate.gate.headers import (
    apply_rate_limit_headers,
    apply_request_id,
    apply_security_headers,
    set_csrf_cookie,
    set_session_cookies,
)
from requestgate.gate.routes import RoutePolicy
from requestgate.ratelimit.models import RateLimitDecision
from requestgate.ratelimit.protocol import RateLimiter
from requestgate.responses import (
    csrf_failed_response,
    internal_error_response,
    rate_limited_response,
    unauthorized_response,
)
from requestgate.session.models import SessionResult
from requestgate.session.verifier import SessionVerifier
from requestgate.utils.logger import clear_request_id, get_logger, set_request_id
from requestgate.utils.ulid import generate_ulid

logger = get_logger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

# Both auth redirects are temporary and preserve the method.
_REDIRECT_STATUS = 307


@dataclass
class GateOutcome:
    """What the gate decided before (or instead of) calling downstream."""

    session: SessionResult
    csrf: CsrfState
    response: Optional[Response] = None
    rate_limit: Optional[RateLimitDecision] = None


class RequestGate:
    """Composes session, CSRF, route-class and quota checks into one decision.

    Args:
        verifier:         Resolves the caller identity.
        csrf:             Issues and validates the double-submit token.
        limiter:          Per-identity admission control (strategy chosen at startup).
        audit:            Fire-and-forget security event sink.
        routes:           Route classes for this deployment.
        secure_cookies:   Set the Secure flag on every cookie (production).
        csrf_cookie_max_age_s: Lifetime of a newly issued CSRF cookie.
    """

    def __init__(
        self,
        verifier: SessionVerifier,
        csrf: CsrfGuard,
        limiter: RateLimiter,
        audit: AuditSink,
        routes: RoutePolicy,
        secure_cookies: bool = True,
        csrf_cookie_max_age_s: int = 86400,
    ) -> None:
        self.verifier = verifier
        self.csrf = csrf
        self.limiter = limiter
        self.audit = audit
        self.routes = routes
        self._secure_cookies = secure_cookies
        self._csrf_cookie_max_age_s = csrf_cookie_max_age_s

    async def handle(self, request: Request, call_next: CallNext) -> Response:
        request_id = generate_ulid()
        set_request_id(request_id)
        request.state.request_id = request_id
        try:
            outcome = await self.evaluate(request)
            response = outcome.response
            if response is None:
                try:
                    response = await call_next(request)
                except Exception as exc:
                    logger.error(
                        "downstream_handler_failed",
                        path=request.url.path,
                        method=request.method,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    response = internal_error_response()
            self._finalise(request, response, outcome, request_id)
            return response
        finally:
            clear_request_id()

    async def evaluate(self, request: Request) -> GateOutcome:
        """Run steps 1–5. ``outcome.response`` is set when the gate denies or redirects."""
        path = request.url.path
        method = request.method

        # 1. Session
        session = await self.verifier.verify(request)
        request.state.user = session.user
        request.state.identity = session.identity

        # 2. CSRF issue
        csrf_state = self.csrf.ensure_token(request)
        outcome = GateOutcome(session=session, csrf=csrf_state)

        # 3. CSRF validate
        if self.csrf.requires_validation(method, path) and not self.csrf.validate(request):
            logger.warning(
                "csrf_validation_failed",
                method=method,
                path=path,
                identity=session.identity,
            )
            self._record(request, "security.csrf_failure", session, method=method, path=path)
            outcome.response = csrf_failed_response()
            return outcome

        # 4. Route class
        if session.authenticated and self.routes.is_auth_page(path):
            outcome.response = RedirectResponse(
                self.routes.authenticated_home, status_code=_REDIRECT_STATUS
            )
            return outcome

        if not session.authenticated:
            if self.routes.is_protected_page(path):
                logger.info("unauthenticated_page_redirect", path=path)
                self._record(request, "security.unauthorized_access", session, method=method, path=path)
                outcome.response = RedirectResponse(
                    self.routes.login_redirect(path), status_code=_REDIRECT_STATUS
                )
                return outcome
            if self.routes.is_protected_api(path):
                logger.info("unauthenticated_api_request", method=method, path=path)
                self._record(request, "security.unauthorized_access", session, method=method, path=path)
                outcome.response = unauthorized_response()
                return outcome

        # 5. Quota
        if self.routes.is_metered(path):
            decision = await self.limiter.check(session.identity)
            outcome.rate_limit = decision
            request.state.rate_limit = decision
            if not decision.allowed:
                logger.warning(
                    "rate_limit_exceeded",
                    identity=session.identity,
                    path=path,
                    limit=decision.limit,
                    reset_in=decision.reset_in,
                )
                self._record(
                    request,
                    "security.rate_limit_exceeded",
                    session,
                    path=path,
                    limit=decision.limit,
                    reset_in=decision.reset_in,
                )
                outcome.response = rate_limited_response(decision)
                return outcome

        return outcome

    def _finalise(
        self,
        request: Request,
        response: Response,
        outcome: GateOutcome,
        request_id: str,
    ) -> None:
        if outcome.session.artifacts is not None:
            set_session_cookies(response, outcome.session.artifacts, secure=self._secure_cookies)
        if outcome.csrf.issued:
            set_csrf_cookie(
                response,
                outcome.csrf.token,
                secure=self._secure_cookies,
                max_age=self._csrf_cookie_max_age_s,
            )
        if self.routes.is_api(request.url.path):
            apply_security_headers(response)
        if outcome.rate_limit is not None:
            apply_rate_limit_headers(response, outcome.rate_limit)
        apply_request_id(response, request_id)

    def _record(
        self,
        request: Request,
        action: AuditAction,
        session: SessionResult,
        **details: Any,
    ) -> None:
        context = audit_context(request)
        self.audit.record(
            AuditEvent(
                action=action,
                user_id=session.user.id if session.user is not None else None,
                resource_type="system",
                details=details,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
        )
