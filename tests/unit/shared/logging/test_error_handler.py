"""Tests for structured error logging.

Verifies: error_code, stack_trace, redacted context and trace_id in the log record.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.shared.errors import StoreError
from src.shared.logging.error_handler import (
    StructuredError,
    _redact_sensitive,
    log_structured_error,
)
from src.shared.trace_context import trace_context

if TYPE_CHECKING:
    import pytest

_REDACTED = "[REDACTED]"
_LOGGER = logging.getLogger("tests.error_handler")


def _raised(exc: Exception) -> Exception:
    try:
        raise exc
    except Exception as caught:  # noqa: BLE001
        return caught


class TestRedactSensitive:
    def test_redacts_password(self) -> None:
        result = _redact_sensitive({"password": "secret123", "user": "alice"})
        assert result == {"password": _REDACTED, "user": "alice"}

    def test_case_insensitive(self) -> None:
        assert _redact_sensitive({"Authorization": "Bearer x"})["Authorization"] == _REDACTED

    def test_redacts_nested(self) -> None:
        result = _redact_sensitive({"outer": {"token": "abc"}})
        assert result["outer"]["token"] == _REDACTED

    def test_preserves_non_sensitive(self) -> None:
        assert _redact_sensitive({"path": "/api/health", "count": 42}) == {"path": "/api/health", "count": 42}


class TestStructuredError:
    def test_to_dict_redacts_context(self) -> None:
        error = StructuredError("E", "m", "trace", context={"password": "x"}, trace_id="t")
        assert error.to_dict() == {
            "error_code": "E",
            "message": "m",
            "stack_trace": "trace",
            "context": {"password": _REDACTED},
            "trace_id": "t",
        }


class TestLogStructuredError:
    def test_generic_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        exc = _raised(ValueError("bad value"))
        with caplog.at_level(logging.ERROR, logger=_LOGGER.name):
            structured = log_structured_error(_LOGGER, exc, context={"path": "/api/x"})

        assert structured.error_code == "ValueError"
        assert "ValueError: bad value" in structured.stack_trace
        assert caplog.records[0].getMessage() == "Unhandled ValueError: bad value"
        assert caplog.records[0].structured_error["context"] == {"path": "/api/x"}

    def test_domain_error_code(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger=_LOGGER.name):
            structured = log_structured_error(_LOGGER, _raised(StoreError("mysql", "Database error")))
        assert structured.error_code == "STORE_ERROR"

    def test_carries_trace_id(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger=_LOGGER.name), trace_context("req-1"):
            structured = log_structured_error(_LOGGER, _raised(RuntimeError("x")), level=logging.WARNING)
        assert structured.trace_id == "req-1"
        assert caplog.records[0].levelno == logging.WARNING

    def test_redacts_context_in_log(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger=_LOGGER.name):
            log_structured_error(_LOGGER, _raised(RuntimeError("x")), context={"cookie": "abc"})
        assert caplog.records[0].structured_error["context"]["cookie"] == _REDACTED
