"""SessionProvider Protocol + NullSessionProvider.

The gate never implements session cryptography. It hands the cookies it was
given to a provider and writes back whatever the provider issues.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from requestgate.session.models import SessionArtifacts, SessionCredentials, SessionUser


class SessionProviderError(Exception):
    """The identity provider could not answer (unreachable, 5xx, malformed reply).

    Distinct from a definitive "no such session" answer, which providers
    express by returning None.
    """


@runtime_checkable
class SessionProvider(Protocol):
    """Pluggable identity provider interface.

    Implementations: SupabaseSessionProvider, NullSessionProvider.
    """

    async def get_current_user(self, credentials: SessionCredentials) -> Optional[SessionUser]:
        """Return the user owning the access token, or None if it is invalid or expired.

        Raises:
            SessionProviderError: If the provider cannot give a definitive answer.
        """
        ...

    async def refresh_session(self, credentials: SessionCredentials) -> Optional[SessionArtifacts]:
        """Exchange the refresh token for new artifacts, or None if it was rejected.

        Raises:
            SessionProviderError: If the provider cannot give a definitive answer.
        """
        ...

    async def health_check(self) -> bool:
        """Returns True if the provider is configured and reachable. Must not raise."""
        ...

    async def close(self) -> None:
        ...


class NullSessionProvider:
    """Provider used when no identity provider is configured.

    Every request resolves to the anonymous identity.
    """

    async def get_current_user(self, credentials: SessionCredentials) -> Optional[SessionUser]:
        return None

    async def refresh_session(self, credentials: SessionCredentials) -> Optional[SessionArtifacts]:
        return None

    async def health_check(self) -> bool:
        return False

    async def close(self) -> None:
        return None


assert isinstance(NullSessionProvider(), SessionProvider), (
    "NullSessionProvider does not satisfy SessionProvider protocol — implementation error"
)
