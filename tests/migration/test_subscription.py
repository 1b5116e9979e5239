import asyncio
from datetime import timedelta

import pytest

from modules.common import runtime as rt
from modules.migration import guards
from modules.migration.errors import Disabled
from modules.migration.subscription import (
    SubscriptionScheduler,
    schedule_subscription_sweep,
    warning_text,
)


def _put(store, guild_id, cfg):
    asyncio.run(store.put(guild_id, cfg))


def test_expired_guild_is_disabled_and_guarded(store, kingdom, fake_env):
    _put(store, fake_env.GUILD_ID, fake_env.config(expires_at=fake_env.NOW - timedelta(hours=1)))
    sweeper = SubscriptionScheduler(kingdom.bot, store)

    report = asyncio.run(sweeper.sweep(fake_env.NOW))

    assert report.disabled == [fake_env.GUILD_ID]
    assert store.get(fake_env.GUILD_ID).disabled is True
    with pytest.raises(Disabled):
        guards.require_config(store, fake_env.GUILD_ID, now=fake_env.NOW)

    again = asyncio.run(sweeper.sweep(fake_env.NOW))
    assert again.disabled == []


def test_renewal_after_disable_restores_service(store, kingdom, fake_env):
    _put(store, fake_env.GUILD_ID, fake_env.config(expires_at=fake_env.NOW - timedelta(days=1)))
    asyncio.run(SubscriptionScheduler(kingdom.bot, store).sweep(fake_env.NOW))

    asyncio.run(store.renew(fake_env.GUILD_ID, now=fake_env.NOW))

    cfg = guards.require_config(store, fake_env.GUILD_ID, now=fake_env.NOW)
    assert not cfg.disabled and not cfg.warned


def test_warning_is_broadcast_once(store, kingdom, fake_env):
    _put(store, fake_env.GUILD_ID, fake_env.config(expires_at=fake_env.NOW + timedelta(days=3)))
    kingdom.welcome.can_send = False
    sweeper = SubscriptionScheduler(kingdom.bot, store)

    report = asyncio.run(sweeper.sweep(fake_env.NOW))
    second = asyncio.run(sweeper.sweep(fake_env.NOW + timedelta(hours=1)))

    expected = warning_text(timedelta(days=3))
    assert report.warned == [fake_env.GUILD_ID]
    assert second.warned == []
    assert kingdom.vote.sent == [expected]
    assert kingdom.ticket.sent == [expected]
    assert kingdom.welcome.sent == []
    assert store.get(fake_env.GUILD_ID).warned is True
    assert "**3 days**" in expected


def test_guild_outside_window_is_left_alone(store, kingdom, fake_env):
    _put(store, fake_env.GUILD_ID, fake_env.config(expires_at=fake_env.NOW + timedelta(days=6)))

    report = asyncio.run(SubscriptionScheduler(kingdom.bot, store).sweep(fake_env.NOW))

    assert report.warned == [] and report.disabled == []
    assert kingdom.vote.sent == []


def test_unavailable_guild_defers_warning(store, fake_env):
    _put(store, 555, fake_env.config(expires_at=fake_env.NOW + timedelta(days=2)))
    bot = fake_env.Bot()

    report = asyncio.run(SubscriptionScheduler(bot, store).sweep(fake_env.NOW))

    assert report.warned == []
    assert store.get(555).warned is False


def test_one_guild_failure_does_not_stop_sweep(store, kingdom, fake_env):
    class FlakyBot(fake_env.Bot):
        def get_guild(self, guild_id):
            if guild_id == 1:
                raise RuntimeError("gateway hiccup")
            return super().get_guild(guild_id)

    bot = FlakyBot()
    bot.add_guild(kingdom.guild)
    soon = fake_env.config(expires_at=fake_env.NOW + timedelta(days=1))
    _put(store, 1, soon)
    _put(store, fake_env.GUILD_ID, soon)

    report = asyncio.run(SubscriptionScheduler(bot, store).sweep(fake_env.NOW))

    assert report.checked == 2
    assert report.failed == [1]
    assert report.warned == [fake_env.GUILD_ID]


def test_warning_text_rounds_days_up():
    assert "**1 day**" in warning_text(timedelta(hours=2))
    assert "**5 days**" in warning_text(timedelta(days=4, hours=1))


def test_sweep_is_registered_on_runtime_scheduler(monkeypatch, store, fake_env):
    monkeypatch.setenv("SUBSCRIPTION_SWEEP_SEC", "10")
    calls = []

    class FakeSweeper:
        async def sweep(self):
            calls.append("sweep")

    def fast_next_run(self, reference=None):
        now = reference or rt.datetime.now(rt.timezone.utc)
        return now + rt.timedelta(milliseconds=10)

    monkeypatch.setattr(rt._RecurringJob, "_compute_next_run", fast_next_run)

    async def runner():
        runtime = rt.Runtime(bot=fake_env.Bot())
        schedule_subscription_sweep(runtime, FakeSweeper())
        await asyncio.sleep(0.05)
        await runtime.scheduler.shutdown()

    asyncio.run(runner())
    assert calls
