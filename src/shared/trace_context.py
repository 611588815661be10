"""Trace-id propagation via contextvars.

- The gateway sets trace_id on request entry (X-Request-ID or a new UUID4)
- TraceIdFilter copies it onto every log record as `trace_id`
- Async-safe: each request task sees its own value
"""

from __future__ import annotations

import logging
from collections.abc import Generator  # noqa: TC003 -- used at runtime by contextmanager
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4

REQUEST_ID_HEADER = "X-Request-ID"

current_trace_id: ContextVar[str] = ContextVar("current_trace_id", default="")


def get_trace_id() -> str:
    """Return the current trace_id (empty string outside a request)."""
    return current_trace_id.get()


@contextmanager
def trace_context(trace_id: str | None = None) -> Generator[str, None, None]:
    """Bind a trace_id for the duration of the block; generate one if empty."""
    effective_id = trace_id or str(uuid4())
    token = current_trace_id.set(effective_id)
    try:
        yield effective_id
    finally:
        current_trace_id.reset(token)


class TraceIdFilter(logging.Filter):
    """Expose the current trace_id to log formats as %(trace_id)s."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id() or "-"
        return True
