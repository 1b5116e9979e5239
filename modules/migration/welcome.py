"""Per-guild welcome message for newly joined members."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .config_store import ConfigStore, utcnow

log = logging.getLogger("migration.welcome")

PLACEHOLDER = "{user}"


def render_welcome(template: str, member: Any) -> str:
    mention = getattr(member, "mention", None) or f"<@{member.id}>"
    return template.replace(PLACEHOLDER, mention)


async def greet_member(bot: Any, store: ConfigStore, member: Any) -> Optional[Any]:
    """Post the guild's welcome template for ``member``; failures are logged."""

    guild = getattr(member, "guild", None)
    if guild is None:
        return None
    cfg = store.get(guild.id)
    if cfg is None or not cfg.is_active(utcnow()) or not cfg.welcome_message:
        return None

    try:
        channel = bot.get_channel(cfg.welcome_channel_id)
        if channel is None:
            channel = await bot.fetch_channel(cfg.welcome_channel_id)
        return await channel.send(render_welcome(cfg.welcome_message, member))
    except Exception:
        log.warning(
            "welcome message not sent",
            exc_info=True,
            extra={"guild_id": guild.id, "channel_id": cfg.welcome_channel_id},
        )
        return None


__all__ = ["PLACEHOLDER", "greet_member", "render_welcome"]
