"""Session provider factory — provider selection by environment variables.

Selection:
  1. SUPABASE_URL and SUPABASE_ANON_KEY both set → SupabaseSessionProvider
  2. Otherwise → NullSessionProvider (every request is anonymous)
"""

from __future__ import annotations

import os

import httpx

from requestgate.config import Config
from requestgate.session.protocol import NullSessionProvider, SessionProvider
from requestgate.session.verifier import SessionVerifier
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_SUPABASE_URL = "SUPABASE_URL"
_ENV_SUPABASE_ANON_KEY = "SUPABASE_ANON_KEY"

# Matches uvicorn --limit-concurrency so every in-flight request has a pool slot.
HTTP_POOL_MAX_CONNECTIONS = 100


def create_http_client(timeout_s: float = 5.0) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient used for identity provider calls.

    Created once at lifespan startup and stored in app.state.http_client.
    NEVER instantiated per request.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=HTTP_POOL_MAX_CONNECTIONS,
            max_keepalive_connections=HTTP_POOL_MAX_CONNECTIONS,
            keepalive_expiry=30.0,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,
    )


def create_session_provider(config: Config, http_client: httpx.AsyncClient) -> SessionProvider:
    """Create the identity provider for this deployment.

    Args:
        config:      Application Config (session.provider_timeout_s is used).
        http_client: Shared httpx client owned by the lifespan.
    """
    url = os.getenv(_ENV_SUPABASE_URL)
    anon_key = os.getenv(_ENV_SUPABASE_ANON_KEY)

    if url and anon_key:
        from requestgate.session.supabase_provider import SupabaseSessionProvider

        logger.info(
            "session_provider_selected",
            provider="SupabaseSessionProvider",
            # Never log the key, only the project host
            supabase_host=url.split("//")[-1].split(".")[0] if "//" in url else "unknown",
        )
        return SupabaseSessionProvider(
            url=url,
            anon_key=anon_key,
            http_client=http_client,
            timeout_s=config.session.provider_timeout_s,
        )

    logger.warning(
        "session_provider_selected",
        provider="NullSessionProvider",
        reason="SUPABASE_URL / SUPABASE_ANON_KEY not set — all requests are anonymous",
    )
    return NullSessionProvider()


def create_session_verifier(config: Config, http_client: httpx.AsyncClient) -> SessionVerifier:
    return SessionVerifier(
        provider=create_session_provider(config, http_client),
        refresh_threshold_s=config.session.refresh_threshold_s,
    )
