"""Preconditions shared by every migration command."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from shared.config import is_owner

from .config_store import ConfigStore, GuildConfig
from .errors import Disabled, Forbidden, NotConfigured, WrongContext


def require_config(
    store: ConfigStore,
    guild_id: Optional[int],
    *,
    now: Optional[datetime] = None,
) -> GuildConfig:
    """Return the guild's config or raise ``NotConfigured`` / ``Disabled``.

    A guild is inactive once ``disabled`` is persisted or its expiry has
    passed, whichever is observed first.
    """

    if guild_id is None:
        raise WrongContext("❌ This command only works inside a server.")
    cfg = store.get(guild_id)
    if cfg is None:
        raise NotConfigured(guild_id)
    if not cfg.is_active(now):
        raise Disabled(guild_id)
    return cfg


def require_owner(user_id: Any) -> None:
    if not is_owner(getattr(user_id, "id", user_id)):
        raise Forbidden("❌ Owner only.")


def _role_ids(member: Any) -> Iterable[int]:
    for role in getattr(member, "roles", None) or ():
        role_id = getattr(role, "id", role)
        try:
            yield int(role_id)
        except (TypeError, ValueError):
            continue


def is_officer(member: Any, cfg: GuildConfig) -> bool:
    return cfg.approve_role_id in set(_role_ids(member))


def require_officer(
    member: Any,
    cfg: GuildConfig,
    *,
    reason: str = "❌ No permission.",
) -> None:
    if not is_officer(member, cfg):
        raise Forbidden(reason)


def require_ticket_channel(channel: Any, cfg: GuildConfig) -> None:
    category_id = getattr(channel, "category_id", None)
    if category_id is None:
        category_id = getattr(getattr(channel, "category", None), "id", None)
    if category_id != cfg.ticket_category_id:
        raise WrongContext()


__all__ = [
    "is_officer",
    "require_config",
    "require_officer",
    "require_owner",
    "require_ticket_channel",
]
