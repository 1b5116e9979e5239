import asyncio
import dataclasses
from datetime import timedelta
from types import SimpleNamespace

import pytest

from modules.migration.errors import Disabled, Forbidden, InvalidRequest, NotConfigured, WrongContext
from modules.migration.interview import InterviewCoordinator, SessionState
from modules.migration.requests import (
    DecisionRequest,
    FillDetailsRequest,
    Outcome,
    RenewRequest,
    SetupRequest,
    WelcomeSetupRequest,
)
from modules.migration.service import MigrationService, decision_notice
from modules.migration.votes import VoteCoordinator


@pytest.fixture
def service(kingdom, store, ledger, fake_env):
    votes = VoteCoordinator(kingdom.bot)
    interviews = InterviewCoordinator(ledger, votes, wait_for=kingdom.bot.wait_for, timeout=5.0)
    return MigrationService(
        kingdom.bot,
        store=store,
        ledger=ledger,
        votes=votes,
        interviews=interviews,
        clock=lambda: fake_env.NOW,
    )


def _setup_request(fake_env, actor_id):
    return SetupRequest(
        guild_id=fake_env.GUILD_ID,
        actor_id=actor_id,
        vote_channel_id=fake_env.VOTE_CHANNEL_ID,
        welcome_channel_id=fake_env.WELCOME_CHANNEL_ID,
        ticket_category_id=fake_env.TICKET_CATEGORY_ID,
        approved_category_id=fake_env.APPROVED_CATEGORY_ID,
        rejected_category_id=fake_env.REJECTED_CATEGORY_ID,
        approve_role_id=fake_env.OFFICER_ROLE_ID,
        sheet_id=fake_env.SHEET_ID,
    )


def _answer(text):
    return SimpleNamespace(content=text, author=SimpleNamespace(id=7), channel=SimpleNamespace(id=555))


def test_setup_is_owner_only(service, store, fake_env):
    with pytest.raises(Forbidden):
        asyncio.run(service.setup(_setup_request(fake_env, actor_id=42)))
    assert store.get(fake_env.GUILD_ID) is None

    cfg = asyncio.run(service.setup(_setup_request(fake_env, actor_id=fake_env.OWNER_ID)))
    assert cfg.expires_at == fake_env.NOW + timedelta(days=30)


def test_setup_validates_after_owner_check(service, fake_env):
    bad = _setup_request(fake_env, actor_id=fake_env.OWNER_ID)
    bad = dataclasses.replace(bad, sheet_id=" ")
    with pytest.raises(InvalidRequest):
        asyncio.run(service.setup(bad))


def test_renew_is_owner_only_and_requires_setup(service, fake_env):
    with pytest.raises(Forbidden):
        asyncio.run(service.renew(RenewRequest(fake_env.GUILD_ID, 42)))
    with pytest.raises(NotConfigured):
        asyncio.run(service.renew(RenewRequest(fake_env.GUILD_ID, fake_env.OWNER_ID)))


def test_welcome_setup_requires_officer(service, store, fake_env):
    asyncio.run(service.setup(_setup_request(fake_env, actor_id=fake_env.OWNER_ID)))
    request = WelcomeSetupRequest(fake_env.GUILD_ID, 10, "  Hi {user}  ")

    with pytest.raises(Forbidden) as excinfo:
        asyncio.run(service.welcome_setup(fake_env.member(10), request))
    assert "officers" in excinfo.value.message

    officer = fake_env.member(10, roles=[fake_env.OFFICER_ROLE_ID])
    cfg = asyncio.run(service.welcome_setup(officer, request))
    assert cfg.welcome_message == "Hi {user}"


def test_ticket_commands_need_ticket_category(service, kingdom, fake_env):
    asyncio.run(service.setup(_setup_request(fake_env, actor_id=fake_env.OWNER_ID)))
    with pytest.raises(WrongContext):
        service.ticket_config(fake_env.GUILD_ID, kingdom.vote)
    assert service.ticket_config(fake_env.GUILD_ID, kingdom.ticket).sheet_id == fake_env.SHEET_ID


def test_disabled_guild_blocks_ticket_commands(service, store, kingdom, fake_env):
    asyncio.run(store.put(fake_env.GUILD_ID, fake_env.config(disabled=True)))
    request = FillDetailsRequest(fake_env.GUILD_ID, kingdom.ticket.id, "ticket-42", 7, "alice")
    with pytest.raises(Disabled):
        asyncio.run(service.start_interview(kingdom.ticket, request))


def test_end_to_end_interview_then_approval(service, kingdom, worksheet, fake_env):
    asyncio.run(service.setup(_setup_request(fake_env, actor_id=fake_env.OWNER_ID)))
    kingdom.bot.queue(_answer("Bob"), _answer("1000"), _answer("500"), _answer("Vip5"))

    async def interview():
        request = FillDetailsRequest(fake_env.GUILD_ID, kingdom.ticket.id, "ticket-42", 7, "alice")
        session = await service.start_interview(kingdom.ticket, request)
        return await service.run_interview(session, kingdom.ticket, first_prompt=kingdom.ticket.send)

    assert asyncio.run(interview()) is SessionState.COMPLETED

    officer = fake_env.member(10, roles=[fake_env.OFFICER_ROLE_ID], name="officer")
    decision = DecisionRequest(
        fake_env.GUILD_ID, kingdom.ticket.id, "ticket-42", Outcome.REJECTED, 10, "officer", reason="too small"
    )
    result = asyncio.run(service.decide(kingdom.ticket, officer, decision))

    assert result.ledger_written
    assert worksheet.rows[0] == [
        "ticket-42", "Bob", "1000", "500", "Vip5", "REJECTED", "officer", "2024-05-01 12:00:00 UTC", "alice",
    ]
    assert kingdom.ticket.category_id == fake_env.REJECTED_CATEGORY_ID
    assert kingdom.ticket.sent[-1] == decision_notice(decision)
    assert "Reason: too small" in kingdom.ticket.sent[-1]
    assert kingdom.vote.sent[0] == "🗳️ **Vote for TICKET-42**"
    assert kingdom.vote.messages[next(iter(kingdom.vote.messages))].content.startswith("🔒")
