"""Tests for trace_id propagation."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from src.shared.trace_context import TraceIdFilter, get_trace_id, trace_context


class TestTraceContext:
    def test_empty_outside_context(self) -> None:
        assert get_trace_id() == ""

    def test_uses_given_id(self) -> None:
        with trace_context("req-123") as trace_id:
            assert trace_id == "req-123"
            assert get_trace_id() == "req-123"
        assert get_trace_id() == ""

    def test_generates_uuid(self) -> None:
        with trace_context() as trace_id:
            UUID(trace_id)

    def test_nested_restores_outer(self) -> None:
        with trace_context("outer"):
            with trace_context("inner"):
                assert get_trace_id() == "inner"
            assert get_trace_id() == "outer"

    async def test_isolated_per_task(self) -> None:
        async def _worker(trace_id: str) -> str:
            with trace_context(trace_id):
                await asyncio.sleep(0)
                return get_trace_id()

        assert await asyncio.gather(_worker("a"), _worker("b")) == ["a", "b"]


class TestTraceIdFilter:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)

    def test_sets_placeholder(self) -> None:
        record = self._record()
        assert TraceIdFilter().filter(record) is True
        assert record.trace_id == "-"

    def test_sets_current_id(self) -> None:
        record = self._record()
        with trace_context("req-9"):
            TraceIdFilter().filter(record)
        assert record.trace_id == "req-9"
