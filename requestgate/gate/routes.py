"""Route classification for the gate.

Prefix matching is segment-aware: ``/plan`` matches ``/plan`` and
``/plan/123`` but not ``/planner``. A prefix ending in ``/`` (``/api/``)
matches everything beneath it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlencode

from requestgate.config import Config
from requestgate.constants import API_PREFIX


def matches_prefix(path: str, prefix: str) -> bool:
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + "/")


def _any_prefix(path: str, prefixes: Iterable[str]) -> bool:
    return any(matches_prefix(path, prefix) for prefix in prefixes)


@dataclass(frozen=True)
class RoutePolicy:
    """Which route classes a path belongs to."""

    protected_pages: tuple[str, ...]
    protected_api: tuple[str, ...]
    auth_pages: tuple[str, ...]
    metered_prefixes: tuple[str, ...]
    exempt_patterns: tuple[re.Pattern[str], ...]
    login_path: str = "/login"
    authenticated_home: str = "/dashboard"

    @classmethod
    def from_config(cls, config: Config) -> "RoutePolicy":
        return cls(
            protected_pages=tuple(config.routes.protected_pages),
            protected_api=tuple(config.routes.protected_api),
            auth_pages=tuple(config.routes.auth_pages),
            metered_prefixes=tuple(config.rate_limit.metered_prefixes),
            exempt_patterns=tuple(re.compile(p) for p in config.routes.exempt_patterns),
            login_path=config.routes.login_path,
            authenticated_home=config.routes.authenticated_home,
        )

    def is_exempt(self, path: str) -> bool:
        """Static assets bypass the gate entirely. API paths never do."""
        if self.is_api(path) or self.is_protected_api(path):
            return False
        return any(pattern.search(path) for pattern in self.exempt_patterns)

    def is_api(self, path: str) -> bool:
        return path.startswith(API_PREFIX)

    def is_protected_page(self, path: str) -> bool:
        return _any_prefix(path, self.protected_pages)

    def is_protected_api(self, path: str) -> bool:
        return _any_prefix(path, self.protected_api)

    def is_auth_page(self, path: str) -> bool:
        return _any_prefix(path, self.auth_pages)

    def is_metered(self, path: str) -> bool:
        return _any_prefix(path, self.metered_prefixes)

    def login_redirect(self, path: str) -> str:
        """Login URL carrying the original path as ``redirectTo``."""
        return f"{self.login_path}?{urlencode({'redirectTo': path})}"
