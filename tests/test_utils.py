"""Tests for logging helpers, the retry utility and the diagnostics tool."""

import logging

import pytest

from aicat.tools.diagnostics import DiagnosticsTools
from aicat.utils import HealthCheckFilter, RecentLogHandler
from aicat.utils.resilience import async_retry


# ── async_retry ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_async_retry_recovers():
    call_count = 0

    async def flaky():
        nonlocal call_count
        call_count += 1
        if call_count < 2:
            raise ConnectionError("transient")
        return "ok"

    assert await async_retry(flaky, max_attempts=3, base_delay=0.01, retryable_exceptions=(ConnectionError,)) == "ok"
    assert call_count == 2


@pytest.mark.asyncio
async def test_async_retry_does_not_retry_other_errors():
    call_count = 0

    async def broken():
        nonlocal call_count
        call_count += 1
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await async_retry(broken, max_attempts=3, base_delay=0.01, retryable_exceptions=(ConnectionError,))
    assert call_count == 1


@pytest.mark.asyncio
async def test_async_retry_exhausts():
    async def down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError, match="down"):
        await async_retry(down, max_attempts=2, base_delay=0.01, retryable_exceptions=(ConnectionError,))


# ── logging ──────────────────────────────────────────────────────────────────


def _record(level, message, name="AICat.Test"):
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


@pytest.fixture
def ring():
    ring = RecentLogHandler(capacity=3)
    for level, message in [
        (logging.INFO, "ignored"),
        (logging.WARNING, "slow host"),
        (logging.ERROR, "send failed"),
        (logging.WARNING, "retrying gpt-5"),
    ]:
        record = _record(level, message)
        if record.levelno >= ring.level:
            ring.handle(record)
    return ring


class TestRecentLogHandler:
    def test_keeps_warning_and_above(self, ring):
        assert [r["message"] for r in ring.query()] == ["retrying gpt-5", "send failed", "slow host"]

    def test_level_and_keyword(self, ring):
        assert [r["message"] for r in ring.query(level="ERROR")] == ["send failed"]
        assert [r["message"] for r in ring.query(keyword="GPT")] == ["retrying gpt-5"]

    def test_capacity(self):
        ring = RecentLogHandler(capacity=2)
        for i in range(3):
            ring.handle(_record(logging.ERROR, f"e{i}"))
        assert len(ring) == 2
        assert ring.query()[-1]["message"] == "e1"


def test_health_check_filter():
    health = HealthCheckFilter()
    assert not health.filter(_record(logging.INFO, '127.0.0.1 - "GET /health HTTP/1.1" 200'))
    assert health.filter(_record(logging.INFO, '127.0.0.1 - "POST /onebot/event HTTP/1.1" 200'))


# ── diagnostics tool ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_query_error_logs(ring, owner):
    result = await DiagnosticsTools(ring).execute("query_error_logs", {"level": "ERROR"}, owner)
    assert result.count == 1
    assert result.data[0]["logger"] == "AICat.Test"


@pytest.mark.asyncio
async def test_query_error_logs_empty(owner):
    result = await DiagnosticsTools(RecentLogHandler()).execute("query_error_logs", {}, owner)
    assert result.success
    assert result.count == 0
