from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord.ext import commands

from modules.common.logs import guild_label
from modules.common.logs import log as human_log
from modules.common.runtime import Runtime
from shared.config import get_config_snapshot, get_discord_token, get_env_name

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("migration.app")

INTENTS = discord.Intents.default()
INTENTS.guilds = True
INTENTS.members = True
INTENTS.messages = True
INTENTS.message_content = True

bot = commands.Bot(
    command_prefix=commands.when_mentioned,
    intents=INTENTS,
    help_command=None,
)

runtime = Runtime(bot)

BOT_VERSION = os.getenv("BOT_VERSION", "dev")
_TREE_SYNCED = False


@bot.event
async def on_ready():
    global _TREE_SYNCED
    log.info("Bot ready as %s | env=%s | version=%s", bot.user, get_env_name(), BOT_VERSION)
    if _TREE_SYNCED:
        return
    try:
        synced = await bot.tree.sync()
    except discord.HTTPException:
        log.exception("slash command sync failed")
        await runtime.send_log_message("❌ Slash command sync failed; see logs.")
        return
    _TREE_SYNCED = True
    line = human_log.event(
        "info",
        "🟢",
        "ready",
        commands=len(synced),
        guilds=len(bot.guilds),
        env=get_env_name(),
    )
    await runtime.send_log_message(line)


@bot.event
async def on_guild_join(guild: discord.Guild):
    human_log.human("info", f"joined guild • {guild_label(guild)}")


CFG = get_config_snapshot()


async def main() -> None:
    log.info("config loaded", extra=CFG)
    try:
        await runtime.start(get_discord_token())
    finally:
        await runtime.close()


if __name__ == "__main__":
    asyncio.run(main())
