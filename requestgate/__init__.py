"""requestgate — request-gating layer for an LLM-backed web application.

Every inbound request passes through one pipeline: session verification,
double-submit CSRF enforcement, route-class checks and per-identity hourly
quota, before it reaches a downstream handler.
"""

__version__ = "1.0.0"
