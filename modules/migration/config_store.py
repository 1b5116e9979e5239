"""Durable per-guild migration settings and subscription state.

All guild records live in one JSON document (``guild_id -> record``). The
document is read fully and rewritten fully on every mutation, and every
mutation goes through :meth:`ConfigStore.mutate` so a read-modify-write can
never interleave with another one across an ``await``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from shared.config import get_guild_config_path

from .errors import ExternalUnavailable, NotConfigured

log = logging.getLogger("migration.store")

RENEWAL_PERIOD = timedelta(days=30)

_REQUIRED_IDS = (
    "vote_channel_id",
    "welcome_channel_id",
    "ticket_category_id",
    "approved_category_id",
    "rejected_category_id",
    "approve_role_id",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return _as_utc(raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # epoch milliseconds
        return datetime.fromtimestamp(float(raw) / 1000.0, tz=timezone.utc)
    text = str(raw or "").strip()
    if not text:
        raise ValueError("expires_at is required")
    return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))


@dataclass(frozen=True)
class GuildConfig:
    """One guild's provisioned settings.

    IDs and ``sheet_id`` are required and fixed at setup time; the welcome
    template is optional. ``warned`` and ``disabled`` are subscription flags
    owned by the scheduler and the renewal command.
    """

    vote_channel_id: int
    welcome_channel_id: int
    ticket_category_id: int
    approved_category_id: int
    rejected_category_id: int
    approve_role_id: int
    sheet_id: str
    expires_at: datetime
    warned: bool = False
    disabled: bool = False
    welcome_message: Optional[str] = None

    def __post_init__(self) -> None:
        for name in _REQUIRED_IDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer")
        if not isinstance(self.sheet_id, str) or not self.sheet_id.strip():
            raise ValueError("sheet_id must be a non-empty string")
        object.__setattr__(self, "expires_at", _as_utc(self.expires_at))
        if self.welcome_message is not None and not str(self.welcome_message).strip():
            object.__setattr__(self, "welcome_message", None)

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        return self.expires_at - _as_utc(now or utcnow())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.remaining(now) <= timedelta(0)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return not self.disabled and not self.is_expired(now)

    def replace(self, **changes: Any) -> "GuildConfig":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {name: getattr(self, name) for name in _REQUIRED_IDS}
        payload.update(
            {
                "sheet_id": self.sheet_id,
                "expires_at": self.expires_at.isoformat(),
                "warned": bool(self.warned),
                "disabled": bool(self.disabled),
                "welcome_message": self.welcome_message,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "GuildConfig":
        ids: Dict[str, int] = {}
        for name in _REQUIRED_IDS:
            value = raw.get(name)
            if value in (None, ""):
                raise ValueError(f"{name} missing")
            ids[name] = int(value)
        return cls(
            **ids,
            sheet_id=str(raw.get("sheet_id") or ""),
            expires_at=_parse_timestamp(raw.get("expires_at")),
            warned=bool(raw.get("warned", False)),
            disabled=bool(raw.get("disabled", False)),
            welcome_message=raw.get("welcome_message") or None,
        )


class _UnreadableDocument(Exception):
    """The config file exists but cannot be read or parsed."""


class ConfigStore:
    """JSON-file backed ``guild_id -> GuildConfig`` store."""

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self.path = Path(path or get_guild_config_path())
        self._lock = asyncio.Lock()

    # === Raw document I/O ===
    def _load(self) -> Dict[str, Any]:
        """Whole document as stored; ``{}`` only when the file does not exist."""

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise _UnreadableDocument(str(exc)) from exc
        if not isinstance(data, dict):
            raise _UnreadableDocument(f"top level is {type(data).__name__}, not an object")
        return {str(key): value for key, value in data.items()}

    def _read_document(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = self._load()
        except _UnreadableDocument:
            log.warning(
                "guild config unreadable; treating every guild as unprovisioned",
                exc_info=True,
                extra={"path": str(self.path)},
            )
            return {}
        return {key: value for key, value in data.items() if isinstance(value, dict)}

    def _write_document(self, document: Mapping[str, Any]) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".guild_config.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _decode(guild_id: str, raw: Mapping[str, Any]) -> Optional[GuildConfig]:
        try:
            return GuildConfig.from_dict(raw)
        except (TypeError, ValueError):
            log.warning("invalid guild config record skipped", exc_info=True, extra={"guild_id": guild_id})
            return None

    # === Reads ===
    def get(self, guild_id: int) -> Optional[GuildConfig]:
        raw = self._read_document().get(str(guild_id))
        if raw is None:
            return None
        return self._decode(str(guild_id), raw)

    def all(self) -> Dict[int, GuildConfig]:
        configs: Dict[int, GuildConfig] = {}
        for key, raw in self._read_document().items():
            cfg = self._decode(key, raw)
            if cfg is None:
                continue
            try:
                configs[int(key)] = cfg
            except ValueError:
                continue
        return configs

    # === Writes ===
    async def mutate(
        self,
        guild_id: int,
        change: Callable[[Optional[GuildConfig]], Optional[GuildConfig]],
    ) -> Optional[GuildConfig]:
        """Serialized read-modify-write of one guild's record.

        ``change`` receives the freshly read record (or ``None``) and returns
        the full replacement record; returning ``None`` leaves the document
        untouched. An existing but unreadable document raises
        :class:`ExternalUnavailable` instead of being overwritten.
        """

        async with self._lock:
            try:
                document = self._load()
            except _UnreadableDocument as exc:
                log.error(
                    "guild config unreadable; refusing to write over it",
                    exc_info=True,
                    extra={"path": str(self.path), "guild_id": guild_id},
                )
                raise ExternalUnavailable("config.read", exc.__cause__ or exc) from exc
            key = str(guild_id)
            raw = document.get(key)
            current = self._decode(key, raw) if isinstance(raw, dict) else None
            updated = change(current)
            if updated is None:
                return current
            document[key] = updated.to_dict()
            self._write_document(document)
            return updated

    async def put(self, guild_id: int, cfg: GuildConfig) -> GuildConfig:
        result = await self.mutate(guild_id, lambda _current: cfg)
        assert result is not None
        return result

    async def provision(
        self,
        guild_id: int,
        *,
        vote_channel_id: int,
        welcome_channel_id: int,
        ticket_category_id: int,
        approved_category_id: int,
        rejected_category_id: int,
        approve_role_id: int,
        sheet_id: str,
        now: Optional[datetime] = None,
    ) -> GuildConfig:
        """Create or overwrite a guild record with a fresh subscription period."""

        moment = _as_utc(now or utcnow())

        def _build(current: Optional[GuildConfig]) -> GuildConfig:
            return GuildConfig(
                vote_channel_id=vote_channel_id,
                welcome_channel_id=welcome_channel_id,
                ticket_category_id=ticket_category_id,
                approved_category_id=approved_category_id,
                rejected_category_id=rejected_category_id,
                approve_role_id=approve_role_id,
                sheet_id=sheet_id.strip(),
                expires_at=moment + RENEWAL_PERIOD,
                warned=False,
                disabled=False,
                welcome_message=current.welcome_message if current else None,
            )

        result = await self.mutate(guild_id, _build)
        assert result is not None
        log.info(
            "guild provisioned",
            extra={"guild_id": guild_id, "expires_at": result.expires_at.isoformat()},
        )
        return result

    async def renew(self, guild_id: int, *, now: Optional[datetime] = None) -> GuildConfig:
        moment = _as_utc(now or utcnow())

        def _renew(current: Optional[GuildConfig]) -> Optional[GuildConfig]:
            if current is None:
                return None
            return current.replace(expires_at=moment + RENEWAL_PERIOD, warned=False, disabled=False)

        result = await self.mutate(guild_id, _renew)
        if result is None:
            raise NotConfigured(guild_id)
        log.info(
            "subscription renewed",
            extra={"guild_id": guild_id, "expires_at": result.expires_at.isoformat()},
        )
        return result

    async def set_welcome_message(self, guild_id: int, message: Optional[str]) -> GuildConfig:
        def _set(current: Optional[GuildConfig]) -> Optional[GuildConfig]:
            if current is None:
                return None
            return current.replace(welcome_message=message)

        result = await self.mutate(guild_id, _set)
        if result is None:
            raise NotConfigured(guild_id)
        return result


__all__ = ["ConfigStore", "GuildConfig", "RENEWAL_PERIOD", "utcnow"]
