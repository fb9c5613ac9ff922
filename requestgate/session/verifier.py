"""SessionVerifier — resolves the caller identity for one request.

Contract: ``verify(request) -> SessionResult``.

  - No session cookies           → anonymous, no provider call.
  - Valid, non-expiring token    → user, no artifacts.
  - Valid token near expiry      → user + refreshed artifacts (one refresh call).
  - Invalid/expired access token → one refresh call if a refresh token exists;
                                   the refreshed user becomes the identity.
  - Provider failure             → anonymous, logged. Never raised to the gate.

The verifier performs at most ONE refresh call per request and never retries.
Retries, if any, belong to the provider's HTTP client.
"""

from __future__ import annotations

import time
from typing import Callable, Mapping, Optional

from starlette.requests import Request

from requestgate.constants import SESSION_COOKIE, SESSION_REFRESH_COOKIE
from requestgate.session.models import (
    SessionArtifacts,
    SessionCredentials,
    SessionResult,
    SessionUser,
)
from requestgate.session.protocol import SessionProvider, SessionProviderError
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)


def credentials_from_cookies(cookies: Mapping[str, str]) -> SessionCredentials:
    """Read the provider-owned session cookies. Empty values count as absent."""
    return SessionCredentials(
        access_token=cookies.get(SESSION_COOKIE) or None,
        refresh_token=cookies.get(SESSION_REFRESH_COOKIE) or None,
    )


class SessionVerifier:
    """Wraps a SessionProvider with the refresh-trigger policy.

    Args:
        provider:            Identity provider to consult.
        refresh_threshold_s: Tokens expiring within this many seconds are refreshed.
        clock:               Epoch-seconds clock (injectable for tests).
    """

    def __init__(
        self,
        provider: SessionProvider,
        refresh_threshold_s: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider = provider
        self._refresh_threshold_s = refresh_threshold_s
        self._clock = clock

    @property
    def provider(self) -> SessionProvider:
        return self._provider

    async def verify(self, request: Request) -> SessionResult:
        """Resolve the identity for ``request``. Never raises."""
        credentials = credentials_from_cookies(request.cookies)
        if credentials.empty:
            return SessionResult()

        try:
            return await self._resolve(credentials)
        except SessionProviderError as exc:
            logger.warning(
                "session_provider_failed",
                error=str(exc),
                path=request.url.path,
            )
        except Exception as exc:
            logger.error(
                "session_provider_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                path=request.url.path,
            )
        return SessionResult()

    async def _resolve(self, credentials: SessionCredentials) -> SessionResult:
        user: Optional[SessionUser] = None
        if credentials.access_token:
            user = await self._provider.get_current_user(credentials)

        if user is None:
            if not credentials.refresh_token:
                return SessionResult()
            # Access token missing or rejected: the refresh is the only way back in.
            artifacts = await self._provider.refresh_session(credentials)
            if artifacts is None:
                return SessionResult()
            refreshed_user = artifacts.user
            if refreshed_user is None:
                refreshed_user = await self._provider.get_current_user(
                    SessionCredentials(access_token=artifacts.access_token)
                )
            logger.debug("session_recovered_by_refresh", identity=_identity_of(refreshed_user))
            return SessionResult(user=refreshed_user, artifacts=artifacts)

        if credentials.refresh_token and self._near_expiry(user):
            artifacts = await self._refresh_valid_session(credentials)
            if artifacts is not None:
                return SessionResult(user=artifacts.user or user, artifacts=artifacts)

        return SessionResult(user=user)

    async def _refresh_valid_session(
        self, credentials: SessionCredentials
    ) -> Optional[SessionArtifacts]:
        # The presented token is still valid, so a failed refresh keeps the user.
        try:
            artifacts = await self._provider.refresh_session(credentials)
        except SessionProviderError as exc:
            logger.warning("session_refresh_failed", error=str(exc))
            return None
        if artifacts is not None:
            logger.debug("session_extended", expires_at=artifacts.expires_at)
        return artifacts

    def _near_expiry(self, user: SessionUser) -> bool:
        if user.expires_at is None:
            return False
        return user.expires_at - self._clock() <= self._refresh_threshold_s


def _identity_of(user: Optional[SessionUser]) -> Optional[str]:
    return user.id if user is not None else None
