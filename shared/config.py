"""Environment-backed settings for the migration bot.

Importing this module fails fast when a required variable is missing, so
the process never reaches the gateway half-configured.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import Dict, Optional, Set

from config import runtime as _runtime

__all__ = [
    "get_config_snapshot",
    "get_env_name",
    "get_bot_name",
    "get_port",
    "get_discord_token",
    "get_gspread_credentials",
    "get_owner_ids",
    "is_owner",
    "get_guild_config_path",
    "get_ledger_tab",
    "get_log_channel_id",
    "get_subscription_sweep_sec",
    "get_interview_timeout_sec",
    "redact_value",
]

log = logging.getLogger("migration.config")

REQUIRED_ENV = ("DISCORD_TOKEN", "GSPREAD_CREDENTIALS", "BOT_OWNER_ID")
SECRET_MARKERS = ("TOKEN", "CREDENTIAL", "SECRET")
MISSING = "—"

_NUMBER = re.compile(r"\d+")
_log_channel_warning_emitted = False


def _require_env(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return os.environ[name]


def _check_required() -> None:
    missing = [name for name in REQUIRED_ENV if not (os.getenv(name) or "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variable: {', '.join(missing)}")


_check_required()


def redact_value(key: str, value: object) -> str:
    """Printable form of a setting; secrets become a short fingerprint."""

    text = "" if value is None else str(value).strip()
    if not text or text in ("[]", "()", "{}"):
        return MISSING
    if not any(marker in str(key).upper() for marker in SECRET_MARKERS):
        return text
    fingerprint = hashlib.sha1(text.encode("utf-8", "ignore")).hexdigest()[:4]
    if "private_key" in text:
        return f"***sa-json:len={len(text)}-{fingerprint}"
    return f"***{fingerprint}"


def _first_int(raw: str | None) -> Optional[int]:
    match = _NUMBER.search(raw or "")
    return int(match.group(0)) if match else None


def get_env_name() -> str:
    return _runtime.get_env_name()


def get_bot_name() -> str:
    return _runtime.get_bot_name()


def get_port() -> int:
    return _runtime.get_port()


def get_discord_token() -> str:
    return _require_env("DISCORD_TOKEN").strip()


def get_gspread_credentials() -> str:
    return _require_env("GSPREAD_CREDENTIALS")


def get_owner_ids() -> Set[int]:
    return set(_runtime.get_owner_ids())


def is_owner(user_id: object) -> bool:
    try:
        return int(user_id) in get_owner_ids()
    except (TypeError, ValueError):
        return False


def get_guild_config_path() -> str:
    raw = (os.getenv("GUILD_CONFIG_PATH") or "").strip()
    return raw or "guild_config.json"


def get_ledger_tab() -> str:
    raw = (os.getenv("LEDGER_TAB") or "").strip()
    return raw or "Sheet1"


def get_log_channel_id() -> Optional[int]:
    global _log_channel_warning_emitted
    raw = os.getenv("LOG_CHANNEL_ID")
    value = _first_int(raw)
    if raw and value is None and not _log_channel_warning_emitted:
        _log_channel_warning_emitted = True
        log.warning("LOG_CHANNEL_ID is not numeric; log channel disabled", extra={"raw": raw})
    return value


def get_subscription_sweep_sec() -> int:
    return _runtime.get_subscription_sweep_sec()


def get_interview_timeout_sec() -> int:
    return _runtime.get_interview_timeout_sec()


def get_config_snapshot() -> Dict[str, str]:
    """Return resolved settings with secrets masked, for startup logging."""

    values: Dict[str, object] = {
        "ENV_NAME": get_env_name(),
        "BOT_NAME": get_bot_name(),
        "PORT": get_port(),
        "DISCORD_TOKEN": os.getenv("DISCORD_TOKEN"),
        "GSPREAD_CREDENTIALS": os.getenv("GSPREAD_CREDENTIALS"),
        "BOT_OWNER_ID": ",".join(str(i) for i in sorted(get_owner_ids())),
        "GUILD_CONFIG_PATH": get_guild_config_path(),
        "LEDGER_TAB": get_ledger_tab(),
        "LOG_CHANNEL_ID": get_log_channel_id(),
        "SUBSCRIPTION_SWEEP_SEC": get_subscription_sweep_sec(),
        "INTERVIEW_TIMEOUT_SEC": get_interview_timeout_sec(),
    }
    return {key: redact_value(key, value) for key, value in values.items()}
