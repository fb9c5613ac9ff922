"""Unit tests for requestgate.audit.factory.create_audit_backend().

Selection:
  - No Supabase env → LocalSQLiteBackend at audit.db_path
  - SUPABASE_URL + SUPABASE_SERVICE_KEY → SupabaseBackend
  - SQLite schema mismatch propagates RuntimeError
"""

from __future__ import annotations

import sqlite3
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from requestgate.audit.factory import create_audit_backend
from requestgate.audit.sqlite_backend import LocalSQLiteBackend
from requestgate.audit.supabase_backend import SupabaseBackend
from requestgate.config import Config


def _config(tmp_path: Any) -> Config:
    config = Config.defaults()
    config.audit.db_path = str(tmp_path / "audit.db")
    return config


class TestCreateAuditBackend:
    async def test_default_is_local_sqlite(self, tmp_path: Any) -> None:
        backend = await create_audit_backend(_config(tmp_path))
        try:
            assert isinstance(backend, LocalSQLiteBackend)
            assert (tmp_path / "audit.db").exists()
            assert await backend.health_check() is True
        finally:
            await backend.close()

    async def test_supabase_selected_with_service_key(
        self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
        with patch(
            "requestgate.audit.supabase_backend.create_async_client",
            new=AsyncMock(return_value=MagicMock()),
        ):
            backend = await create_audit_backend(_config(tmp_path))
        assert isinstance(backend, SupabaseBackend)
        assert not (tmp_path / "audit.db").exists()

    async def test_url_without_service_key_falls_back(
        self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        backend = await create_audit_backend(_config(tmp_path))
        try:
            assert isinstance(backend, LocalSQLiteBackend)
        finally:
            await backend.close()

    async def test_schema_mismatch_propagates(self, tmp_path: Any) -> None:
        conn = sqlite3.connect(tmp_path / "audit.db")
        conn.execute("PRAGMA user_version = 99")
        conn.commit()
        conn.close()
        with pytest.raises(RuntimeError):
            await create_audit_backend(_config(tmp_path))
