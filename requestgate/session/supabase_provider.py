"""SupabaseSessionProvider — Supabase Auth (GoTrue) over HTTP.

Uses the shared httpx.AsyncClient created in the lifespan. The client is never
instantiated per request.

Endpoints:
  GET  {url}/auth/v1/user                               — resolve the access token
  POST {url}/auth/v1/token?grant_type=refresh_token     — exchange the refresh token

Status mapping:
  200          → user / artifacts
  400/401/403  → None (definitive "no session")
  anything else, transport errors, malformed JSON → SessionProviderError

Token expiry is read from the access token's ``exp`` claim without verifying the
signature. Verification is the provider's job; the gate only needs the
timestamp to decide when to refresh.
"""

from __future__ import annotations

import base64
import json
from typing import Any, Optional

import httpx

from requestgate.session.models import SessionArtifacts, SessionCredentials, SessionUser
from requestgate.session.protocol import SessionProviderError
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

_REJECTED_STATUSES: frozenset[int] = frozenset({400, 401, 403})


def token_expiry(access_token: str) -> Optional[int]:
    """Return the ``exp`` claim of a JWT access token, or None if unreadable."""
    parts = access_token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, TypeError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    return int(exp) if isinstance(exp, (int, float)) else None


class SupabaseSessionProvider:
    """Identity provider backed by Supabase Auth.

    Usage:
        provider = SupabaseSessionProvider(url, anon_key, http_client)
        user = await provider.get_current_user(credentials)
        artifacts = await provider.refresh_session(credentials)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        http_client: httpx.AsyncClient,
        timeout_s: float = 5.0,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._anon_key = anon_key
        self._http = http_client
        self._timeout_s = timeout_s

    def _headers(self, bearer: Optional[str] = None) -> dict[str, str]:
        headers = {"apikey": self._anon_key}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def get_current_user(self, credentials: SessionCredentials) -> Optional[SessionUser]:
        if not credentials.access_token:
            return None

        response = await self._send(
            "GET",
            f"{self._base_url}/auth/v1/user",
            headers=self._headers(credentials.access_token),
        )
        if response.status_code in _REJECTED_STATUSES:
            return None
        body = self._json_or_raise(response)
        return _parse_user(body, expires_at=token_expiry(credentials.access_token))

    async def refresh_session(self, credentials: SessionCredentials) -> Optional[SessionArtifacts]:
        if not credentials.refresh_token:
            return None

        response = await self._send(
            "POST",
            f"{self._base_url}/auth/v1/token",
            params={"grant_type": "refresh_token"},
            headers=self._headers(),
            json={"refresh_token": credentials.refresh_token},
        )
        if response.status_code in _REJECTED_STATUSES:
            logger.info("session_refresh_rejected", status_code=response.status_code)
            return None
        body = self._json_or_raise(response)

        access = body.get("access_token")
        refresh = body.get("refresh_token")
        if not access or not refresh:
            raise SessionProviderError("refresh reply is missing token fields")

        expires_at = body.get("expires_at") or token_expiry(access)
        user_raw = body.get("user")
        user = _parse_user(user_raw, expires_at=expires_at) if isinstance(user_raw, dict) else None
        return SessionArtifacts(
            access_token=access,
            refresh_token=refresh,
            expires_at=int(expires_at) if expires_at is not None else None,
            user=user,
        )

    async def health_check(self) -> bool:
        """Returns True if the Auth health endpoint answers 200. Must not raise."""
        try:
            response = await self._http.get(
                f"{self._base_url}/auth/v1/health",
                headers=self._headers(),
                timeout=self._timeout_s,
            )
            return response.status_code == 200
        except Exception as exc:
            logger.warning("session_provider_health_failed", error=str(exc))
            return False

    async def close(self) -> None:
        """No-op — the shared httpx client is closed by the lifespan."""
        return None

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, timeout=self._timeout_s, **kwargs)
        except httpx.HTTPError as exc:
            raise SessionProviderError(f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 500:
            raise SessionProviderError(f"provider returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> dict[str, Any]:
        if response.status_code != 200:
            raise SessionProviderError(f"unexpected provider status {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise SessionProviderError("provider reply is not JSON") from exc
        if not isinstance(body, dict):
            raise SessionProviderError("provider reply is not a JSON object")
        return body


def _parse_user(raw: dict[str, Any], expires_at: Optional[int]) -> SessionUser:
    user_id = raw.get("id")
    if not user_id:
        raise SessionProviderError("provider user object has no id")
    return SessionUser(
        id=str(user_id),
        email=raw.get("email"),
        expires_at=int(expires_at) if expires_at is not None else None,
        metadata=dict(raw.get("user_metadata") or {}),
    )
