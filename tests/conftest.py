"""Root test configuration for requestgate.

Pins APP_ENV=test and removes every provider credential from the environment
for the whole suite, so factories select the local implementations
(NullSessionProvider, LocalSQLiteBackend, SQLiteRateLimitStore) and no test
reaches the network.

Tests that exercise Supabase selection set the variables themselves with
monkeypatch (their fixture runs after this one and wins).
"""

from __future__ import annotations

import pytest

_CREDENTIAL_VARS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_KEY",
)

_OVERRIDE_VARS = (
    "REQUESTGATE_CONFIG",
    "REQUESTGATE_PORT",
    "REQUESTGATE_DB_PATH",
    "REQUESTGATE_RATELIMIT_DB_PATH",
    "RATE_LIMIT_REQUESTS_PER_HOUR",
    "RATE_LIMIT_REQUESTS_PER_DAY",
    "RATE_LIMIT_STRATEGY",
    "SKIP_CSRF_IN_DEV",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test environment with no provider credentials and no config overrides."""
    monkeypatch.setenv("APP_ENV", "test")
    for name in _CREDENTIAL_VARS + _OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
