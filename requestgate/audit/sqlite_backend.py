"""LocalSQLiteBackend — aiosqlite-based async audit backend.

  - WAL mode: PRAGMA journal_mode=WAL (concurrent reads while writing)
  - Schema version guard: PRAGMA user_version=1, RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - Idempotent writes: INSERT OR IGNORE on the event_id primary key
  - Append-only: no UPDATE or DELETE statement exists in this module
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from requestgate.audit.models import AuditEvent
from requestgate.audit.protocol import EventFilters
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS audit_logs (
    event_id        TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL,
    user_id         TEXT,
    action          TEXT NOT NULL,
    resource_type   TEXT CHECK(resource_type IN ('plan', 'conversation', 'profile', 'auth', 'system') OR resource_type IS NULL),
    resource_id     TEXT,
    details         TEXT NOT NULL DEFAULT '{}',
    ip_address      TEXT,
    user_agent      TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_logs_user_timestamp
    ON audit_logs(user_id, timestamp DESC);

CREATE INDEX IF NOT EXISTS idx_audit_logs_action
    ON audit_logs(action);
"""

_SCHEMA_VERSION = 1


# ─── Row deserialiser ─────────────────────────────────────────────────────────


def _row_to_audit_event(row: aiosqlite.Row) -> AuditEvent:
    details_raw: Optional[str] = row["details"]
    return AuditEvent(
        event_id=row["event_id"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        user_id=row["user_id"],
        action=row["action"],
        resource_type=row["resource_type"],
        resource_id=row["resource_id"],
        details=json.loads(details_raw) if details_raw else {},
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
    )


# ─── LocalSQLiteBackend ───────────────────────────────────────────────────────


class LocalSQLiteBackend:
    """Async SQLite audit backend.

    Default path: ~/.requestgate/audit.db (audit.db_path / REQUESTGATE_DB_PATH).

    Usage:
        backend = LocalSQLiteBackend(db_path)
        await backend.initialize()   # raises RuntimeError on schema version mismatch
        results = await backend.query_events(EventFilters(user_id=user_id))
        await backend.close()
    """

    def __init__(self, db_path: str = "~/.requestgate/audit.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the SQLite connection, enable WAL mode, and create/verify schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
                          The lifespan lets this propagate and startup fails.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            # executescript may not honour PRAGMA in all SQLite builds.
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info(
                "audit_db_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "audit_db_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported audit database schema version: {current_version}. "
                f"Move {self._db_path} aside to start with a fresh audit log."
            )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("audit_db_closed", db_path=self._db_path)

    # ── AuditBackend Protocol Methods ─────────────────────────────────────────

    async def log_event(self, event: AuditEvent) -> None:
        """Persist an audit event. Catches ALL exceptions and never re-raises."""
        try:
            assert self._db is not None, "Database not initialized — call initialize() first"
            await self._db.execute(
                """INSERT OR IGNORE INTO audit_logs
                   (event_id, timestamp, user_id, action, resource_type,
                    resource_id, details, ip_address, user_agent)
                   VALUES (?,?,?,?,?,?,?,?,?)""",
                (
                    event.event_id,
                    event.timestamp.isoformat(),
                    event.user_id,
                    event.action,
                    event.resource_type,
                    event.resource_id,
                    json.dumps(event.details, default=str),
                    event.ip_address,
                    event.user_agent,
                ),
            )
            await self._db.commit()
        except Exception as exc:
            logger.error(
                "audit_write_failed",
                event_id=event.event_id,
                action=event.action,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def query_events(self, filters: EventFilters) -> list[AuditEvent]:
        """Newest first. All filter values are bound parameters."""
        assert self._db is not None, "Database not initialized"
        sql, params = _build_select_sql(filters)
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        return [_row_to_audit_event(row) for row in rows]

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False


# ─── SQL Builder Helper ───────────────────────────────────────────────────────


def _build_select_sql(filters: EventFilters) -> tuple[str, list[Any]]:
    sql = "SELECT * FROM audit_logs"
    conditions: list[str] = []
    params: list[Any] = []

    if filters.user_id is not None:
        conditions.append("user_id = ?")
        params.append(filters.user_id)

    if filters.action is not None:
        conditions.append("action = ?")
        params.append(filters.action)

    if filters.since is not None:
        conditions.append("timestamp >= ?")
        params.append(filters.since.isoformat())

    if conditions:
        sql += " WHERE " + " AND ".join(conditions)

    sql += " ORDER BY timestamp DESC, event_id DESC LIMIT ? OFFSET ?"
    params.extend([filters.limit, filters.offset])
    return sql, params
