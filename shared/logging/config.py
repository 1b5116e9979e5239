"""Process-wide logging setup: JSON lines on stderr, plus an access log."""

from __future__ import annotations

import logging
import os
from typing import Mapping

from .structured import JsonFormatter

__all__ = ["setup_logging"]

# third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("discord.gateway", "discord.client", "gspread")


def _level_from_env(fallback: int = logging.INFO) -> int:
    name = (os.getenv("LOG_LEVEL") or "").strip().upper()
    resolved = logging.getLevelName(name) if name else fallback
    return resolved if isinstance(resolved, int) else fallback


def _install(logger: logging.Logger, formatter: logging.Formatter, *, replace: bool) -> None:
    if replace:
        logger.handlers.clear()
    streams = [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]
    if not streams:
        streams = [logging.StreamHandler()]
        logger.addHandler(streams[0])
    for handler in streams:
        handler.setFormatter(formatter)


def setup_logging(
    *,
    static_fields: Mapping[str, str] | None = None,
    access_logger_name: str = "aiohttp.access",
    access_static_fields: Mapping[str, str] | None = None,
) -> logging.Logger:
    """Route every record through :class:`JsonFormatter` and return the access logger.

    ``static_fields`` (usually ``bot`` and ``env``) are stamped on every
    record. The access logger does not propagate, so health checks never
    show up twice.
    """

    base = dict(static_fields or {})

    root = logging.getLogger()
    root.setLevel(_level_from_env())
    _install(root, JsonFormatter(static=base), replace=False)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    access_fields = {**base, **dict(access_static_fields or {})}
    access_fields.setdefault("logger", access_logger_name)

    access = logging.getLogger(access_logger_name)
    access.propagate = False
    access.setLevel(logging.INFO)
    _install(access, JsonFormatter(static=access_fields), replace=True)
    return access
