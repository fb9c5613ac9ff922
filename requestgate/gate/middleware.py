"""RequestGateMiddleware — runs the RequestGate in front of every route.

Registration (in create_app() in requestgate/main.py):
    application.add_middleware(RequestGateMiddleware)

The gate itself is built in the lifespan and stored on app.state.gate. Until
startup has finished (app.state.ready) every request gets 503
SERVICE_STARTING, so no request is ever evaluated against a half-built gate.
"""

from __future__ import annotations

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from requestgate.gate.pipeline import RequestGate
from requestgate.responses import service_starting_response
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)


class RequestGateMiddleware(BaseHTTPMiddleware):
    """Starlette middleware delegating to app.state.gate."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        gate: Optional[RequestGate] = getattr(request.app.state, "gate", None)
        if gate is None or not getattr(request.app.state, "ready", False):
            logger.debug("request_before_ready", path=request.url.path)
            return service_starting_response()

        if gate.routes.is_exempt(request.url.path):
            return await call_next(request)

        return await gate.handle(request, call_next)
