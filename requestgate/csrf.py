"""Double-submit CSRF guard.

Per request:
  1. ensure_token(): if the request carries no ``csrf_token`` cookie, mint a new
     256-bit token. The gate sets it on the response unconditionally, even on
     GET, so a token exists before the client ever needs to echo one back.
  2. requires_validation(): only state-changing methods on protected path
     prefixes are checked.
  3. validate(): header ``x-csrf-token`` and cookie ``csrf_token`` must both be
     present and equal byte-for-byte. Absence of either is a failure.

The check is independent of authentication: an anonymous caller with a bad
token gets CSRF_VALIDATION_FAILED, not UNAUTHORIZED.

The cookie is deliberately NOT httpOnly — client scripts must read it to echo
it in the header. Making it httpOnly breaks the protocol.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional

from starlette.requests import Request

from requestgate.constants import CSRF_COOKIE, CSRF_HEADER, CSRF_TOKEN_BYTES
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)


def generate_csrf_token() -> str:
    """Return 32 cryptographically random bytes as 64 lowercase hex characters."""
    return secrets.token_hex(CSRF_TOKEN_BYTES)


@dataclass(frozen=True)
class CsrfState:
    """Token state for one request.

    issued=True means the request had no cookie and ``token`` is new; the gate
    must set it on the response.
    """

    token: str
    issued: bool


class CsrfGuard:
    """Issues and validates the double-submit token pair.

    Args:
        protected_methods:  HTTP methods that require validation.
        protected_prefixes: Path prefixes that require validation.
        enabled:            False only for the explicit development opt-out.
    """

    def __init__(
        self,
        protected_methods: Iterable[str],
        protected_prefixes: Iterable[str],
        enabled: bool = True,
    ) -> None:
        self._methods = frozenset(m.upper() for m in protected_methods)
        self._prefixes = tuple(protected_prefixes)
        self._enabled = enabled
        if not enabled:
            logger.warning(
                "CSRF VALIDATION DISABLED for this process — development opt-out in effect"
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def ensure_token(self, request: Request) -> CsrfState:
        existing = request.cookies.get(CSRF_COOKIE)
        if existing:
            return CsrfState(token=existing, issued=False)
        return CsrfState(token=generate_csrf_token(), issued=True)

    def requires_validation(self, method: str, path: str) -> bool:
        if not self._enabled:
            return False
        return method.upper() in self._methods and path.startswith(self._prefixes)

    def validate(self, request: Request) -> bool:
        """Return True iff header and cookie are both present and identical."""
        header_token: Optional[str] = request.headers.get(CSRF_HEADER)
        cookie_token: Optional[str] = request.cookies.get(CSRF_COOKIE)
        if not header_token or not cookie_token:
            return False
        return hmac.compare_digest(header_token.encode(), cookie_token.encode())
