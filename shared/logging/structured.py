"""JSON log lines and the per-context trace id they carry."""

from __future__ import annotations

import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

_trace: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="")

# attributes every LogRecord has; anything else arrived through ``extra=``
_BUILTIN_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

_SCALARS = (str, int, float, bool, type(None))


def set_trace_id(value: str | None = None) -> str:
    """Bind ``value`` (or a fresh 12-char id) as the trace for this context and return it."""

    trace = value or uuid.uuid4().hex[:12]
    _trace.set(trace)
    return trace


def get_trace_id() -> str:
    return _trace.get()


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    ``static`` fields (bot, env) are merged into every line. Scalar
    ``extra=`` fields are copied through; anything else is dropped.
    """

    def __init__(self, static: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self._static = dict(static or {})

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "trace": getattr(record, "trace", "") or get_trace_id(),
            **self._static,
        }
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _BUILTIN_ATTRS
            and key not in payload
            and not key.startswith("_")
            and isinstance(value, _SCALARS)
        }
        payload.update(extras)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)
