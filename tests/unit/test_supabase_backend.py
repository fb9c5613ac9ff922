"""Unit tests for requestgate.audit.supabase_backend.SupabaseBackend.

Simulates the supabase AsyncClient with a fluent MagicMock chain.

Key behaviours tested:
  - Unreachable Supabase never affects the caller (all exceptions swallowed)
  - asyncio.wait_for timeout wraps every operation
  - Safe defaults: None, [], False — never raises
  - Client is None → every method returns its safe default without a call
  - query_events() applies filters, ordering and the offset/limit range
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from requestgate.audit.models import AuditEvent
from requestgate.audit.protocol import AuditBackend, EventFilters
from requestgate.audit.supabase_backend import SupabaseBackend, _dict_to_event
from requestgate.constants import SUPABASE_TIMEOUT_S

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _make_event(action: str = "security.csrf_failure") -> AuditEvent:
    return AuditEvent(
        action=action,  # type: ignore[arg-type]
        user_id="user-test",
        resource_type="system",
        timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


def _make_mock_execute_response(data: list[Any] | None = None) -> AsyncMock:
    response = MagicMock()
    response.data = data or []
    return AsyncMock(return_value=response)


def _build_query_chain(execute_mock: AsyncMock) -> MagicMock:
    """Fluent mock query chain ending in .execute() AsyncMock."""
    chain = MagicMock()
    chain.select.return_value = chain
    chain.insert.return_value = chain
    chain.order.return_value = chain
    chain.limit.return_value = chain
    chain.range.return_value = chain
    chain.eq.return_value = chain
    chain.gte.return_value = chain
    chain.execute = execute_mock
    return chain


def _backend_with_chain(chain: MagicMock) -> tuple[SupabaseBackend, MagicMock]:
    backend = SupabaseBackend(url="https://test.supabase.co", key="test-key")
    client = MagicMock()
    client.table.return_value = chain
    backend._client = client
    return backend, client


# ─── Protocol Compliance ──────────────────────────────────────────────────────


class TestSupabaseBackendProtocol:
    def test_satisfies_audit_backend_protocol(self) -> None:
        backend = SupabaseBackend(url="https://test.supabase.co", key="test-key")
        assert isinstance(backend, AuditBackend)

    def test_timeout_constant_is_5_seconds(self) -> None:
        assert SUPABASE_TIMEOUT_S == 5.0


# ─── No Client ────────────────────────────────────────────────────────────────


class TestNoClient:
    async def test_all_methods_return_safe_defaults(self) -> None:
        backend = SupabaseBackend(url="https://test.supabase.co", key="test-key")
        assert await backend.log_event(_make_event()) is None
        assert await backend.query_events(EventFilters()) == []
        assert await backend.health_check() is False


# ─── log_event ────────────────────────────────────────────────────────────────


class TestLogEvent:
    async def test_inserts_event_dict(self) -> None:
        chain = _build_query_chain(_make_mock_execute_response())
        backend, client = _backend_with_chain(chain)
        event = _make_event()

        await backend.log_event(event)

        client.table.assert_called_once_with("audit_logs")
        chain.insert.assert_called_once_with(event.to_dict())
        chain.execute.assert_awaited_once()

    async def test_exception_swallowed(self) -> None:
        chain = _build_query_chain(AsyncMock(side_effect=ConnectionError("unreachable")))
        backend, _ = _backend_with_chain(chain)
        assert await backend.log_event(_make_event()) is None

    async def test_timeout_swallowed(self) -> None:
        chain = _build_query_chain(AsyncMock(side_effect=asyncio.TimeoutError()))
        backend, _ = _backend_with_chain(chain)
        assert await backend.log_event(_make_event()) is None

    async def test_wait_for_uses_timeout(self) -> None:
        chain = _build_query_chain(_make_mock_execute_response())
        backend, _ = _backend_with_chain(chain)
        real_wait_for = asyncio.wait_for
        seen: list[float] = []

        async def spy(awaitable: Any, timeout: float) -> Any:
            seen.append(timeout)
            return await real_wait_for(awaitable, timeout=timeout)

        with patch("requestgate.audit.supabase_backend.asyncio.wait_for", new=spy):
            await backend.log_event(_make_event())
        assert seen == [SUPABASE_TIMEOUT_S]


# ─── query_events ─────────────────────────────────────────────────────────────


class TestQueryEvents:
    async def test_applies_filters_and_range(self) -> None:
        row = _make_event().to_dict()
        chain = _build_query_chain(_make_mock_execute_response([row]))
        backend, _ = _backend_with_chain(chain)
        since = datetime(2026, 3, 1, tzinfo=timezone.utc)

        results = await backend.query_events(
            EventFilters(user_id="user-test", action="security.csrf_failure", since=since,
                         limit=10, offset=20)
        )

        assert len(results) == 1
        assert results[0].event_id == row["event_id"]
        chain.select.assert_called_once_with("*")
        chain.order.assert_called_once_with("timestamp", desc=True)
        chain.eq.assert_any_call("user_id", "user-test")
        chain.eq.assert_any_call("action", "security.csrf_failure")
        chain.gte.assert_called_once_with("timestamp", since.isoformat())
        chain.range.assert_called_once_with(20, 29)

    async def test_empty_result(self) -> None:
        chain = _build_query_chain(_make_mock_execute_response([]))
        backend, _ = _backend_with_chain(chain)
        assert await backend.query_events(EventFilters()) == []

    async def test_error_returns_empty(self) -> None:
        chain = _build_query_chain(AsyncMock(side_effect=RuntimeError("boom")))
        backend, _ = _backend_with_chain(chain)
        assert await backend.query_events(EventFilters()) == []


# ─── Lifecycle ────────────────────────────────────────────────────────────────


class TestLifecycle:
    async def test_initialize_failure_leaves_client_unset(self) -> None:
        with patch(
            "requestgate.audit.supabase_backend.create_async_client",
            new=AsyncMock(side_effect=ConnectionError("unreachable")),
        ):
            backend = SupabaseBackend(url="https://test.supabase.co", key="test-key")
            await backend.initialize()
        assert backend._client is None

    async def test_health_check_success_and_failure(self) -> None:
        ok_backend, _ = _backend_with_chain(_build_query_chain(_make_mock_execute_response()))
        assert await ok_backend.health_check() is True

        bad_backend, _ = _backend_with_chain(
            _build_query_chain(AsyncMock(side_effect=asyncio.TimeoutError()))
        )
        assert await bad_backend.health_check() is False

    async def test_close(self) -> None:
        backend, _ = _backend_with_chain(_build_query_chain(_make_mock_execute_response()))
        await backend.close()
        assert backend._client is None


# ─── Row conversion ───────────────────────────────────────────────────────────


class TestDictToEvent:
    def test_z_suffix_parsed(self) -> None:
        event = _dict_to_event({
            "event_id": "01HZZZZZZZZZZZZZZZZZZZZZZZ",
            "timestamp": "2026-03-01T12:00:00Z",
            "action": "auth.login",
        })
        assert event.timestamp == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert event.details == {}
        assert event.user_id is None

    def test_round_trip_from_to_dict(self) -> None:
        original = _make_event()
        restored = _dict_to_event(original.to_dict())
        assert restored == original
