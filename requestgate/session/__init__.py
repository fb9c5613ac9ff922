"""Session verification package.

    from requestgate.session import SessionVerifier, SessionResult

Layout:
    models.py            — SessionCredentials, SessionUser, SessionArtifacts, SessionResult
    protocol.py          — SessionProvider Protocol + SessionProviderError + NullSessionProvider
    verifier.py          — SessionVerifier (refresh-trigger policy, failure → anonymous)
    supabase_provider.py — SupabaseSessionProvider (Supabase Auth over httpx)
    factory.py           — create_session_provider() / create_session_verifier()
"""

from requestgate.session.models import (
    SessionArtifacts,
    SessionCredentials,
    SessionResult,
    SessionUser,
)
from requestgate.session.protocol import (
    NullSessionProvider,
    SessionProvider,
    SessionProviderError,
)
from requestgate.session.verifier import SessionVerifier, credentials_from_cookies

__all__ = [
    "SessionArtifacts",
    "SessionCredentials",
    "SessionResult",
    "SessionUser",
    "NullSessionProvider",
    "SessionProvider",
    "SessionProviderError",
    "SessionVerifier",
    "credentials_from_cookies",
]
