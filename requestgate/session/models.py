"""Session dataclasses shared by the verifier and the identity providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from requestgate.constants import ANONYMOUS


@dataclass(frozen=True)
class SessionCredentials:
    """Session material carried by the request cookies. Both fields are opaque."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.access_token and not self.refresh_token


@dataclass(frozen=True)
class SessionUser:
    """An authenticated user as reported by the identity provider."""

    id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None
    """Epoch seconds at which the presented access token expires, if known."""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionArtifacts:
    """New session material issued by a refresh call.

    The gate writes these back as cookies so the client's session is extended
    without a round trip through the login page.
    """

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None
    user: Optional[SessionUser] = None


@dataclass(frozen=True)
class SessionResult:
    """Outcome of SessionVerifier.verify() for one request."""

    user: Optional[SessionUser] = None
    artifacts: Optional[SessionArtifacts] = None

    @property
    def identity(self) -> str:
        return self.user.id if self.user is not None else ANONYMOUS

    @property
    def authenticated(self) -> bool:
        return self.user is not None
