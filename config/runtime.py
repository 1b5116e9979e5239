from __future__ import annotations

# config/runtime.py
import os
import re
from typing import List, Optional

_DIGITS = re.compile(r"\d+")


def _coerce_int(value: Optional[str], fallback: int) -> int:
    try:
        return int(str(value).strip()) if value is not None else fallback
    except ValueError:
        return fallback


def get_port(default: int = 10000) -> int:
    """Health server port; hosts inject $PORT, local runs use ``default``."""
    return _coerce_int(os.getenv("PORT"), default)


def get_env_name(default: str = "dev") -> str:
    return os.getenv("ENV_NAME", default)


def get_bot_name(default: str = "Migration-Manager") -> str:
    return os.getenv("BOT_NAME", default)


def get_owner_ids() -> List[int]:
    """
    Every integer found in BOT_OWNER_ID, in order, e.g. "123", "123,456"
    or " [ 123 ; 456 ] ". Anything else in the value is ignored.
    """
    return [int(match) for match in _DIGITS.findall(os.getenv("BOT_OWNER_ID", ""))]


def get_subscription_sweep_sec(default: int = 3600) -> int:
    """Seconds between subscription sweeps; never faster than once a minute."""
    return max(60, _coerce_int(os.getenv("SUBSCRIPTION_SWEEP_SEC"), default))


def get_interview_timeout_sec(default: int = 600) -> int:
    value = _coerce_int(os.getenv("INTERVIEW_TIMEOUT_SEC"), default)
    return value if value > 0 else default
