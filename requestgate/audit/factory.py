"""Audit backend factory — backend selection and initialization.

Backend selection:
  1. SUPABASE_URL and SUPABASE_SERVICE_KEY both set → SupabaseBackend
  2. Otherwise → LocalSQLiteBackend at audit.db_path

PRAGMA version guard:
  LocalSQLiteBackend.initialize() raises RuntimeError if PRAGMA user_version
  is not 0 (fresh) or 1 (expected). The lifespan lets it propagate and the
  process refuses to start.
"""

from __future__ import annotations

import os

from requestgate.audit.protocol import AuditBackend
from requestgate.config import Config
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Environment variable names ───────────────────────────────────────────────

_ENV_SUPABASE_URL = "SUPABASE_URL"
_ENV_SUPABASE_SERVICE_KEY = "SUPABASE_SERVICE_KEY"


async def create_audit_backend(config: Config) -> AuditBackend:
    """Create and initialize the appropriate audit backend.

    Raises:
      RuntimeError: If LocalSQLiteBackend finds an incompatible schema version.
    """
    supabase_url = os.getenv(_ENV_SUPABASE_URL)
    service_key = os.getenv(_ENV_SUPABASE_SERVICE_KEY)

    if supabase_url and service_key:
        return await _create_supabase_backend(supabase_url, service_key)
    return await _create_local_sqlite_backend(config.audit.db_path)


async def _create_supabase_backend(url: str, key: str) -> AuditBackend:
    from requestgate.audit.supabase_backend import SupabaseBackend

    backend = SupabaseBackend(url=url, key=key)
    await backend.initialize()
    logger.info(
        "audit_backend_selected",
        backend="SupabaseBackend",
        # Never log the key, only the URL host portion
        supabase_host=url.split("//")[-1].split(".")[0] if "//" in url else "unknown",
    )
    return backend


async def _create_local_sqlite_backend(db_path: str) -> AuditBackend:
    from requestgate.audit.sqlite_backend import LocalSQLiteBackend

    backend = LocalSQLiteBackend(db_path=db_path)
    await backend.initialize()
    logger.info("audit_backend_selected", backend="LocalSQLiteBackend", db_path=db_path)
    return backend
