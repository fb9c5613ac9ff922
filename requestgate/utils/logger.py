"""Structured logging utilities for requestgate.

This module provides async-safe structured logging using structlog.
Every log line emitted while a request is being gated carries its request_id,
and sensitive values (tokens, cookies, passwords) are redacted before rendering.
"""

import logging
import re
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

# Context variable for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Keys whose values are never rendered. Matched as case-insensitive substrings.
SENSITIVE_KEYS: tuple[str, ...] = (
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
    "session",
    "credit_card",
    "ssn",
)

# Values that look like bearer material even under an innocuous key.
_SECRET_VALUE_RE = re.compile(r"^(sk-|pk_|eyJ|ghp_|gho_)")

# Keys structlog itself owns; never redact these.
_RESERVED_KEYS: frozenset[str] = frozenset({"event", "level", "timestamp", "request_id", "logger"})


def add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add request_id to log context if available."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add epoch timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def _sanitize(value: Any) -> Any:
    if isinstance(value, str):
        if len(value) > 20 and _SECRET_VALUE_RE.match(value):
            return f"{value[:8]}...REDACTED"
        return value
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if _is_sensitive_key(str(k)) else _sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return value


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact_sensitive(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace sensitive values with placeholders before rendering.

    Keys containing any SENSITIVE_KEYS marker become "[REDACTED]"; string values
    shaped like API keys or JWTs are truncated to their first 8 characters.
    """
    for key in list(event_dict.keys()):
        if key in _RESERVED_KEYS:
            continue
        if _is_sensitive_key(key):
            event_dict[key] = "[REDACTED]"
        else:
            event_dict[key] = _sanitize(event_dict[key])
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format. If False, use console format.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_sensitive,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "requestgate") -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    """Set request ID in context for all subsequent logs.

    Args:
        request_id: Unique identifier for the request
    """
    request_id_var.set(request_id)


def clear_request_id() -> None:
    """Clear request ID from context."""
    request_id_var.set(None)


# Initialize logging with sensible defaults
# This will be reconfigured by main.py based on environment
configure_logging()
