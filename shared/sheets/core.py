"""gspread plumbing for the ledger: authorised client, tab handles, retries.

Everything here blocks; call it through :mod:`shared.sheets.async_adapter`.
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TypeVar

import gspread
from gspread import Worksheet
from gspread.exceptions import APIError
from requests import exceptions as requests_exceptions

from shared.config import get_gspread_credentials

log = logging.getLogger("migration.sheets.core")

T = TypeVar("T")

# statuses Google returns for throttling and short outages
RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})
_RETRYABLE_HINTS = ("rate limit", "quota", "timeout", "backend error")

_client_lock = threading.Lock()
_client: Optional[gspread.Client] = None


class _TabCache:
    """``(spreadsheet, tab) -> Worksheet`` with a per-entry deadline."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], Tuple[Worksheet, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Tuple[str, str], now: float) -> Optional[Worksheet]:
        with self._lock:
            hit = self._entries.get(key)
        if hit is None or hit[1] <= now:
            return None
        return hit[0]

    def put(self, key: Tuple[str, str], worksheet: Worksheet, deadline: float) -> None:
        with self._lock:
            self._entries[key] = (worksheet, deadline)

    def clear(self, spreadsheet_id: Optional[str] = None) -> None:
        with self._lock:
            if spreadsheet_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == spreadsheet_id]:
                del self._entries[key]


_tabs = _TabCache()


def _credentials() -> Mapping[str, Any]:
    try:
        parsed = json.loads(get_gspread_credentials())
    except json.JSONDecodeError as exc:
        raise RuntimeError("GSPREAD_CREDENTIALS is not valid JSON") from exc
    if not isinstance(parsed, Mapping):
        raise RuntimeError("GSPREAD_CREDENTIALS must be a JSON object")
    return parsed


def get_client() -> gspread.Client:
    """Service-account client, built once per process."""

    global _client
    with _client_lock:
        if _client is None:
            log.debug("authorising gspread service account")
            _client = gspread.service_account_from_dict(_credentials())
        return _client


def clear_cached_client() -> None:
    global _client
    with _client_lock:
        _client = None


def clear_cached_worksheets(spreadsheet_id: Optional[str] = None) -> None:
    _tabs.clear(spreadsheet_id)


def service_account_email() -> str:
    """Address each guild must share its ledger sheet with ("" if unknown)."""

    try:
        return str(_credentials().get("client_email") or "")
    except RuntimeError:
        return ""


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, requests_exceptions.RequestException):
        return True
    if not isinstance(exc, APIError):
        return False
    response = getattr(exc, "response", None)
    if getattr(response, "status_code", None) in RETRYABLE_STATUS:
        return True
    blob = f"{getattr(response, 'text', '') or ''} {exc}".lower()
    return any(hint in blob for hint in _RETRYABLE_HINTS)


def backoff_budget(*, retries: int = 4, base_delay: float = 0.5, max_delay: float = 8.0) -> float:
    """Longest total sleep ``with_backoff`` can add with the same settings."""

    return sum(min(max_delay, base_delay * (2 ** n)) + base_delay for n in range(retries))


def with_backoff(
    func: Callable[[], T],
    *,
    retries: int = 4,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
) -> T:
    """Call ``func``; transient failures are retried with jittered doubling delays."""

    for attempt in range(retries + 1):
        try:
            return func()
        except Exception as exc:
            if attempt >= retries or not is_transient(exc):
                raise
            delay = min(max_delay, base_delay * (2 ** attempt)) + random.uniform(0.0, base_delay)
            log.warning(
                "sheets call failed; retrying",
                extra={"attempt": attempt + 1, "retries": retries, "error": str(exc)},
            )
            time.sleep(delay)
    raise AssertionError("unreachable")


def get_worksheet(
    spreadsheet_id: str,
    worksheet_name: str,
    *,
    ttl: float = 300.0,
    force: bool = False,
) -> Worksheet:
    """Handle for one tab, reused for ``ttl`` seconds unless ``force`` is set."""

    key = (spreadsheet_id, worksheet_name)
    now = time.monotonic()
    if not force and ttl > 0:
        cached = _tabs.get(key, now)
        if cached is not None:
            return cached

    spreadsheet = with_backoff(lambda: get_client().open_by_key(spreadsheet_id))
    worksheet = with_backoff(lambda: spreadsheet.worksheet(worksheet_name))
    if ttl > 0:
        _tabs.put(key, worksheet, now + ttl)
    return worksheet


__all__ = [
    "RETRYABLE_STATUS",
    "backoff_budget",
    "clear_cached_client",
    "clear_cached_worksheets",
    "get_client",
    "get_worksheet",
    "is_transient",
    "service_account_email",
    "with_backoff",
]
