"""Shared constants for requestgate.

Cookie names, header names, window sizes and default route sets used across
modules are defined here. No magic strings in other modules — import from here.
"""

# ─── Cookies ──────────────────────────────────────────────────────────────────

# Provider-owned access token. Opaque to the gate.
SESSION_COOKIE: str = "session_token"

# Provider-owned refresh token, exchanged for new artifacts near expiry.
SESSION_REFRESH_COOKIE: str = "session_refresh_token"

# Double-submit CSRF token. Must stay script-readable (httpOnly=False).
CSRF_COOKIE: str = "csrf_token"

# 32 random bytes → 64 hex characters.
CSRF_TOKEN_BYTES: int = 32

CSRF_COOKIE_MAX_AGE_S: int = 60 * 60 * 24  # 24 hours

SESSION_REFRESH_COOKIE_MAX_AGE_S: int = 60 * 60 * 24 * 30  # 30 days

# ─── Headers ──────────────────────────────────────────────────────────────────

CSRF_HEADER: str = "x-csrf-token"
REQUEST_ID_HEADER: str = "X-Request-ID"

# Applied to every response whose path starts with API_PREFIX.
API_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store, max-age=0",
}

API_PREFIX: str = "/api/"

# ─── Identity ─────────────────────────────────────────────────────────────────

ANONYMOUS: str = "anonymous"

# ─── Rate limiting ────────────────────────────────────────────────────────────

WINDOW_SECONDS: int = 3600  # fixed hourly windows, clock-aligned

DEFAULT_REQUESTS_PER_HOUR: int = 20
DEFAULT_REQUESTS_PER_DAY: int = 100  # advisory only, never enforced

# ─── Route classes ────────────────────────────────────────────────────────────

DEFAULT_PROTECTED_PAGES: tuple[str, ...] = ("/dashboard", "/plan", "/onboarding", "/settings")

DEFAULT_PROTECTED_API: tuple[str, ...] = (
    "/api/chat",
    "/api/plan",
    "/api/goals",
    "/api/documents",
    "/api/email-preferences",
    "/api/audit-events",
)

DEFAULT_AUTH_PAGES: tuple[str, ...] = ("/login", "/signup", "/forgot-password")

DEFAULT_METERED_PREFIXES: tuple[str, ...] = ("/api/chat",)

DEFAULT_CSRF_METHODS: tuple[str, ...] = ("POST", "PUT", "DELETE", "PATCH")

DEFAULT_CSRF_PREFIXES: tuple[str, ...] = (API_PREFIX,)

# Static assets never enter the gate.
DEFAULT_EXEMPT_PATTERNS: tuple[str, ...] = (
    r"^/_next/static/",
    r"^/_next/image",
    r"^/favicon\.ico$",
    r".*\.(?:svg|png|jpg|jpeg|gif|webp)$",
)

# ─── External stores ──────────────────────────────────────────────────────────

# All Supabase operations are wrapped in asyncio.wait_for(timeout=...).
SUPABASE_TIMEOUT_S: float = 5.0
