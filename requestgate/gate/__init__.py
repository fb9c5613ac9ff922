"""Request gating pipeline.

Layout:
    routes.py     — RoutePolicy (route classes, exempt assets, login redirect)
    headers.py    — cookie and header writers used at finalisation
    pipeline.py   — RequestGate (session → CSRF → route class → quota → finalise)
    middleware.py — RequestGateMiddleware (app.state.gate, 503 before ready)
"""

from requestgate.gate.middleware import RequestGateMiddleware
from requestgate.gate.pipeline import GateOutcome, RequestGate
from requestgate.gate.routes import RoutePolicy

__all__ = ["GateOutcome", "RequestGate", "RequestGateMiddleware", "RoutePolicy"]
