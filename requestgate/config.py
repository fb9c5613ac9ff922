"""Config loading for requestgate.

Reads `.requestgate/config.yaml` (or `~/.requestgate/config.yaml`).
Raises SystemExit on parse errors, missing `version` field, or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. REQUESTGATE_CONFIG environment variable (if set)
  3. `.requestgate/config.yaml` (working directory — for development)
  4. `~/.requestgate/config.yaml` (home directory — for production deployments)

Environment variable overrides (always win over the file):
  APP_ENV                       — environment (development | test | production)
  REQUESTGATE_PORT              — server.port
  RATE_LIMIT_REQUESTS_PER_HOUR  — rate_limit.requests_per_hour
  RATE_LIMIT_REQUESTS_PER_DAY   — rate_limit.requests_per_day (advisory)
  RATE_LIMIT_STRATEGY           — rate_limit.strategy (local | shared)
  SKIP_CSRF_IN_DEV              — csrf.skip_in_dev (honoured in development only)
  REQUESTGATE_DB_PATH           — audit.db_path
  REQUESTGATE_RATELIMIT_DB_PATH — rate_limit.db_path

Provider credentials (SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_KEY) are
read by the factories directly from the environment and never stored here.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from requestgate.constants import (
    CSRF_COOKIE_MAX_AGE_S,
    DEFAULT_AUTH_PAGES,
    DEFAULT_CSRF_METHODS,
    DEFAULT_CSRF_PREFIXES,
    DEFAULT_EXEMPT_PATTERNS,
    DEFAULT_METERED_PREFIXES,
    DEFAULT_PROTECTED_API,
    DEFAULT_PROTECTED_PAGES,
    DEFAULT_REQUESTS_PER_DAY,
    DEFAULT_REQUESTS_PER_HOUR,
)
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_ENVIRONMENTS: frozenset[str] = frozenset({"development", "test", "production"})

# local:  in-process counters, single-instance deployments only
# shared: durable store counters, correct across many instances
VALID_STRATEGIES: frozenset[str] = frozenset({"local", "shared"})

DEFAULT_CONFIG_PATHS = [
    ".requestgate/config.yaml",
    os.path.expanduser("~/.requestgate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """Uvicorn binding configuration."""

    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class SessionConfig:
    """Session verifier configuration."""

    refresh_threshold_s: int = 300  # refresh access tokens expiring within 5 minutes
    provider_timeout_s: float = 5.0


@dataclass
class CsrfConfig:
    """Double-submit CSRF guard configuration."""

    skip_in_dev: bool = False
    protected_methods: list[str] = field(default_factory=lambda: list(DEFAULT_CSRF_METHODS))
    protected_prefixes: list[str] = field(default_factory=lambda: list(DEFAULT_CSRF_PREFIXES))
    cookie_max_age_s: int = CSRF_COOKIE_MAX_AGE_S


@dataclass
class RateLimitConfig:
    """Per-identity hourly quota configuration."""

    requests_per_hour: int = DEFAULT_REQUESTS_PER_HOUR
    requests_per_day: int = DEFAULT_REQUESTS_PER_DAY
    strategy: str = "shared"  # "local" | "shared"
    metered_prefixes: list[str] = field(default_factory=lambda: list(DEFAULT_METERED_PREFIXES))
    db_path: str = "~/.requestgate/ratelimit.db"  # SQLite shared store when Supabase is absent


@dataclass
class RoutesConfig:
    """Route classes evaluated by the gate."""

    protected_pages: list[str] = field(default_factory=lambda: list(DEFAULT_PROTECTED_PAGES))
    protected_api: list[str] = field(default_factory=lambda: list(DEFAULT_PROTECTED_API))
    auth_pages: list[str] = field(default_factory=lambda: list(DEFAULT_AUTH_PAGES))
    login_path: str = "/login"
    authenticated_home: str = "/dashboard"
    exempt_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXEMPT_PATTERNS))


@dataclass
class AuditConfig:
    """Audit log store configuration."""

    db_path: str = "~/.requestgate/audit.db"


@dataclass
class Config:
    """Root configuration object populated from .requestgate/config.yaml.

    All fields have safe defaults — requestgate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    environment: str = "production"
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    csrf: CsrfConfig = field(default_factory=CsrfConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    routes: RoutesConfig = field(default_factory=RoutesConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    path: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def csrf_validation_disabled(self) -> bool:
        """True only for an explicit skip_in_dev opt-in in the development environment."""
        return self.csrf.skip_in_dev and self.environment == "development"

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid environment or rate_limit.strategy value.
        """
        environment = raw.get("environment", "production")
        _require_choice("environment", environment, VALID_ENVIRONMENTS)

        server_raw = raw.get("server", {})
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 3000),
        )

        session_raw = raw.get("session", {})
        session = SessionConfig(
            refresh_threshold_s=session_raw.get("refresh_threshold_s", 300),
            provider_timeout_s=session_raw.get("provider_timeout_s", 5.0),
        )

        csrf_raw = raw.get("csrf", {})
        csrf = CsrfConfig(
            skip_in_dev=bool(csrf_raw.get("skip_in_dev", False)),
            protected_methods=[
                m.upper() for m in csrf_raw.get("protected_methods", DEFAULT_CSRF_METHODS)
            ],
            protected_prefixes=list(csrf_raw.get("protected_prefixes", DEFAULT_CSRF_PREFIXES)),
            cookie_max_age_s=csrf_raw.get("cookie_max_age_s", CSRF_COOKIE_MAX_AGE_S),
        )

        rate_raw = raw.get("rate_limit", {})
        strategy = rate_raw.get("strategy", "shared")
        _require_choice("rate_limit.strategy", strategy, VALID_STRATEGIES)
        rate_limit = RateLimitConfig(
            requests_per_hour=rate_raw.get("requests_per_hour", DEFAULT_REQUESTS_PER_HOUR),
            requests_per_day=rate_raw.get("requests_per_day", DEFAULT_REQUESTS_PER_DAY),
            strategy=strategy,
            metered_prefixes=list(rate_raw.get("metered_prefixes", DEFAULT_METERED_PREFIXES)),
            db_path=rate_raw.get("db_path", "~/.requestgate/ratelimit.db"),
        )

        routes_raw = raw.get("routes", {})
        routes = RoutesConfig(
            protected_pages=list(routes_raw.get("protected_pages", DEFAULT_PROTECTED_PAGES)),
            protected_api=list(routes_raw.get("protected_api", DEFAULT_PROTECTED_API)),
            auth_pages=list(routes_raw.get("auth_pages", DEFAULT_AUTH_PAGES)),
            login_path=routes_raw.get("login_path", "/login"),
            authenticated_home=routes_raw.get("authenticated_home", "/dashboard"),
            exempt_patterns=list(routes_raw.get("exempt_patterns", DEFAULT_EXEMPT_PATTERNS)),
        )

        audit_raw = raw.get("audit", {})
        audit = AuditConfig(db_path=audit_raw.get("db_path", "~/.requestgate/audit.db"))

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            environment=environment,
            server=server,
            session=session,
            csrf=csrf,
            rate_limit=rate_limit,
            routes=routes,
            audit=audit,
            path=path,
        )


def _config_error(msg: str) -> NoReturn:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


def _require_choice(name: str, value: object, valid: frozenset[str]) -> None:
    if value not in valid:
        _config_error(f"Invalid {name}: '{value}'. Supported values: {sorted(valid)}.")


def _require_positive_int(name: str, value: object) -> None:
    # bool is an int subclass; `true` in YAML is not a ceiling.
    if isinstance(value, bool) or not isinstance(value, int):
        _config_error(f"{name} must be an integer, got '{value}'")
    if value <= 0:
        _config_error(f"{name} must be positive, got {value}")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate requestgate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases, then the result is validated.

    Raises:
        SystemExit(1): On YAML parse error, missing/unsupported ``version``, an
                       invalid enum value, or a malformed environment override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("REQUESTGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        _validate(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "requestgate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)
    _validate(config)

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        environment=config.environment,
        rate_limit_strategy=config.rate_limit.strategy,
    )
    return config


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        _config_error(f"{name} environment variable is not a valid integer: '{raw}'")


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If an integer override is not a valid integer.
    """
    env_name = os.environ.get("APP_ENV")
    if env_name is not None:
        config.environment = env_name.strip().lower()

    port = _env_int("REQUESTGATE_PORT")
    if port is not None:
        config.server.port = port

    per_hour = _env_int("RATE_LIMIT_REQUESTS_PER_HOUR")
    if per_hour is not None:
        config.rate_limit.requests_per_hour = per_hour

    per_day = _env_int("RATE_LIMIT_REQUESTS_PER_DAY")
    if per_day is not None:
        config.rate_limit.requests_per_day = per_day

    strategy = os.environ.get("RATE_LIMIT_STRATEGY")
    if strategy is not None:
        config.rate_limit.strategy = strategy.strip().lower()

    skip_csrf = os.environ.get("SKIP_CSRF_IN_DEV")
    if skip_csrf is not None:
        config.csrf.skip_in_dev = skip_csrf.strip().lower() == "true"

    db_path = os.environ.get("REQUESTGATE_DB_PATH")
    if db_path:
        config.audit.db_path = db_path

    ratelimit_db_path = os.environ.get("REQUESTGATE_RATELIMIT_DB_PATH")
    if ratelimit_db_path:
        config.rate_limit.db_path = ratelimit_db_path


def _validate(config: Config) -> None:
    """Reject invalid values and emit the loud opt-in / precondition warnings."""
    _require_choice("environment", config.environment, VALID_ENVIRONMENTS)
    _require_choice("rate_limit.strategy", config.rate_limit.strategy, VALID_STRATEGIES)

    _require_positive_int("rate_limit.requests_per_hour", config.rate_limit.requests_per_hour)
    _require_positive_int("rate_limit.requests_per_day", config.rate_limit.requests_per_day)

    if config.csrf.skip_in_dev:
        if config.environment == "development":
            logger.warning(
                "CSRF VALIDATION DISABLED: skip_in_dev is set in the development environment. "
                "State-changing API requests will not be checked for a CSRF token.",
                environment=config.environment,
            )
        else:
            logger.error(
                "skip_in_dev ignored outside development — CSRF validation stays enabled",
                environment=config.environment,
            )

    if config.rate_limit.strategy == "local" and config.is_production:
        logger.warning(
            "Local rate-limit strategy in production: counters are per-process and "
            "only correct when a single instance serves all traffic."
        )

    logger.info(
        "Daily request ceiling is advisory and not enforced",
        requests_per_day=config.rate_limit.requests_per_day,
        requests_per_hour=config.rate_limit.requests_per_hour,
    )
