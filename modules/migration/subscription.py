"""Recurring subscription sweep: expiry warnings and sticky disablement."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Optional

from modules.common.logs import guild_label
from modules.common.logs import log as human_log
from shared.config import get_subscription_sweep_sec

from .config_store import ConfigStore, GuildConfig, utcnow

if TYPE_CHECKING:
    from modules.common.runtime import Runtime

log = logging.getLogger("migration.subscription")

WARNING_WINDOW = timedelta(days=5)


def warning_text(remaining: timedelta) -> str:
    days = max(1, math.ceil(remaining.total_seconds() / 86400))
    unit = "day" if days == 1 else "days"
    return (
        "⚠️ **Migration Manager Notice**\n\n"
        f"This bot will stop working in **{days} {unit}**.\n"
        "Please contact the owner to continue using the service."
    )


@dataclass
class SweepReport:
    checked: int = 0
    disabled: list[int] = field(default_factory=list)
    warned: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"checked={self.checked} disabled={len(self.disabled)} "
            f"warned={len(self.warned)} failed={len(self.failed)}"
        )


async def broadcast(guild: Any, content: str) -> int:
    """Send ``content`` to every text channel the bot may post in."""

    me = getattr(guild, "me", None)
    sent = 0
    for channel in list(getattr(guild, "text_channels", None) or ()):
        if me is not None:
            perms = channel.permissions_for(me)
            if not (perms.view_channel and perms.send_messages):
                continue
        try:
            await channel.send(content)
        except Exception:
            log.warning(
                "warning broadcast failed for channel",
                exc_info=True,
                extra={"guild_id": getattr(guild, "id", None), "channel_id": getattr(channel, "id", None)},
            )
            continue
        sent += 1
    return sent


class SubscriptionScheduler:
    def __init__(
        self,
        bot: Any,
        store: ConfigStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.bot = bot
        self.store = store
        self._clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Check every guild once; one guild's failure never stops the rest."""

        moment = now or self._clock()
        report = SweepReport()
        for guild_id, cfg in self.store.all().items():
            report.checked += 1
            try:
                await self._check_guild(guild_id, cfg, moment, report)
            except Exception:
                log.exception("subscription check failed", extra={"guild_id": guild_id})
                report.failed.append(guild_id)
        log.info("subscription sweep finished", extra={"summary": report.summary()})
        return report

    async def _check_guild(
        self,
        guild_id: int,
        cfg: GuildConfig,
        now: datetime,
        report: SweepReport,
    ) -> None:
        remaining = cfg.remaining(now)

        if remaining <= timedelta(0):
            if cfg.disabled:
                return

            def _disable(current: Optional[GuildConfig]) -> Optional[GuildConfig]:
                # a renewal may have landed since the snapshot was taken
                if current is None or current.disabled or not current.is_expired(now):
                    return None
                return current.replace(disabled=True)

            updated = await self.store.mutate(guild_id, _disable)
            if updated is not None and updated.disabled:
                report.disabled.append(guild_id)
                human_log.event("warning", "⛔", "subscription_expired", guild=guild_id)
            return

        if remaining >= WARNING_WINDOW or cfg.warned or cfg.disabled:
            return

        guild = self.bot.get_guild(guild_id)
        if guild is None:
            log.info("guild unavailable; warning deferred", extra={"guild_id": guild_id})
            return

        marked = False

        def _mark(current: Optional[GuildConfig]) -> Optional[GuildConfig]:
            nonlocal marked
            if current is None or current.warned or current.remaining(now) >= WARNING_WINDOW:
                return None
            marked = True
            return current.replace(warned=True)

        await self.store.mutate(guild_id, _mark)
        if not marked:
            return
        report.warned.append(guild_id)
        sent = await broadcast(guild, warning_text(remaining))
        human_log.event(
            "info",
            "⏳",
            "subscription_warning",
            guild=guild_label(guild),
            channels=sent,
        )


def schedule_subscription_sweep(runtime: "Runtime", sweeper: SubscriptionScheduler) -> None:
    job = runtime.scheduler.every(
        seconds=float(get_subscription_sweep_sec()),
        tag="subscription",
        name="subscription_sweep",
    )

    async def runner() -> None:
        await runtime.bot.wait_until_ready()
        await sweeper.sweep()

    job.do(runner)


__all__ = [
    "SubscriptionScheduler",
    "SweepReport",
    "WARNING_WINDOW",
    "broadcast",
    "schedule_subscription_sweep",
    "warning_text",
]
