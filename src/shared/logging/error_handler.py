"""Structured logging of unexpected errors.

Request handlers never leak internals to clients; the JSON body only says
"Internal server error". The log line carries the error code, stack trace,
request context (with credentials redacted) and the trace id.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import asdict, dataclass, field
from typing import Any

from src.shared.trace_context import get_trace_id

_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "token",
        "secret",
        "authorization",
        "cookie",
    }
)


@dataclass(frozen=True)
class StructuredError:
    error_code: str
    message: str
    stack_trace: str
    context: dict[str, Any] = field(default_factory=dict)
    trace_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["context"] = _redact_sensitive(d["context"])
        return d


def _redact_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in _SENSITIVE_KEYS:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = _redact_sensitive(value)
        else:
            result[key] = value
    return result


def log_structured_error(
    logger: logging.Logger,
    exc: Exception,
    *,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> StructuredError:
    """Log an exception with its code, stack and context.

    The code is taken from `exc.code` (UserBridgeError) or the class name.
    """
    structured = StructuredError(
        error_code=getattr(exc, "code", type(exc).__name__),
        message=str(exc),
        stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        context=context or {},
        trace_id=get_trace_id(),
    )
    logger.log(
        level,
        "Unhandled %s: %s",
        structured.error_code,
        structured.message,
        extra={"structured_error": structured.to_dict()},
    )
    return structured
