"""SQLiteRateLimitStore — aiosqlite-backed RateLimitStore.

For single-host deployments (several worker processes sharing one file) and
for tests. Multi-host deployments use SupabaseRateLimitStore.

  - WAL mode: concurrent readers across processes while one writes
  - Schema version guard: PRAGMA user_version=1, RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - increment() is one INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement,
    so the write and the read-back of the new count are a single atomic step
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from requestgate.ratelimit.protocol import RateLimitStoreError
from requestgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rate_limits (
    user_id         TEXT NOT NULL,
    window_start    TEXT NOT NULL,
    request_count   INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,
    PRIMARY KEY (user_id, window_start)
);

CREATE INDEX IF NOT EXISTS idx_rate_limits_window_start
    ON rate_limits(window_start);
"""

_SCHEMA_VERSION = 1

_INCREMENT_SQL = """
INSERT INTO rate_limits (user_id, window_start, request_count, created_at)
VALUES (?, ?, 1, ?)
ON CONFLICT (user_id, window_start)
DO UPDATE SET request_count = request_count + 1
RETURNING request_count
"""


def _window_key(window_start: datetime) -> str:
    return window_start.astimezone(timezone.utc).isoformat()


# ─── SQLiteRateLimitStore ─────────────────────────────────────────────────────


class SQLiteRateLimitStore:
    """RateLimitStore over a local SQLite file.

    Usage:
        store = SQLiteRateLimitStore("~/.requestgate/ratelimit.db")
        await store.initialize()   # raises RuntimeError on schema version mismatch
        count = await store.count_since(user_id, window_start)
        new_count = await store.increment(user_id, window_start)
        await store.close()
    """

    def __init__(self, db_path: str = "~/.requestgate/ratelimit.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        # One connection is shared by every coroutine in the process; statement and
        # commit of one increment must not interleave with another.
        self._write_lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL, create or verify the schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
                          The lifespan lets this propagate and startup fails.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("PRAGMA journal_mode=WAL;")
        # Other worker processes may hold the write lock briefly.
        await self._db.execute("PRAGMA busy_timeout = 5000;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info(
                "rate_limit_db_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "rate_limit_db_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported rate limit database schema version: {current_version}. "
                f"Delete {self._db_path} to reset (counters are hourly and safe to drop)."
            )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("rate_limit_db_closed", db_path=self._db_path)

    # ── RateLimitStore Protocol Methods ───────────────────────────────────────

    async def count_since(self, identity: str, window_start: datetime) -> int:
        db = self._connection()
        try:
            cursor = await db.execute(
                "SELECT COALESCE(SUM(request_count), 0) FROM rate_limits "
                "WHERE user_id = ? AND window_start >= ?",
                (identity, _window_key(window_start)),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise RateLimitStoreError(f"count query failed: {exc}") from exc
        return int(row[0]) if row else 0

    async def increment(self, identity: str, window_start: datetime) -> int:
        db = self._connection()
        try:
            async with self._write_lock:
                cursor = await db.execute(
                    _INCREMENT_SQL,
                    (
                        identity,
                        _window_key(window_start),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                row = await cursor.fetchone()
                await cursor.close()
                await db.commit()
        except aiosqlite.Error as exc:
            raise RateLimitStoreError(f"increment failed: {exc}") from exc
        if row is None:
            raise RateLimitStoreError("increment returned no row")
        return int(row[0])

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False

    def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RateLimitStoreError("rate limit database not initialized")
        return self._db
