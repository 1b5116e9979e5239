"""Command-level orchestration: guards first, then the matching workflow."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from shared.config import get_interview_timeout_sec

from .approval import ApprovalResult, ApprovalWorkflow
from .config_store import ConfigStore, GuildConfig, utcnow
from .guards import require_config, require_officer, require_owner, require_ticket_channel
from .interview import InterviewCoordinator, SessionState, TicketSession
from .ledger import LedgerClient
from .requests import (
    DecisionRequest,
    FillDetailsRequest,
    Outcome,
    RenewRequest,
    SetupRequest,
    WelcomeSetupRequest,
)
from .subscription import SubscriptionScheduler
from .votes import VoteCoordinator
from .welcome import greet_member

log = logging.getLogger("migration.service")


def decision_notice(request: DecisionRequest) -> str:
    emoji = "✅" if request.outcome is Outcome.APPROVED else "❌"
    text = f"{emoji} This ticket has been **{request.outcome.verb}** by <@{request.actor_id}>."
    if request.reason:
        text += f"\nReason: {request.reason}"
    return text


class MigrationService:
    """Wires the store, ledger, votes, interviews, approvals and sweep together."""

    def __init__(
        self,
        bot: Any,
        *,
        store: Optional[ConfigStore] = None,
        ledger: Optional[LedgerClient] = None,
        votes: Optional[VoteCoordinator] = None,
        interviews: Optional[InterviewCoordinator] = None,
        approvals: Optional[ApprovalWorkflow] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.bot = bot
        self.clock = clock
        self.store = store or ConfigStore()
        self.ledger = ledger or LedgerClient()
        self.votes = votes or VoteCoordinator(bot)
        self.interviews = interviews or InterviewCoordinator(
            self.ledger,
            self.votes,
            wait_for=bot.wait_for,
            timeout=float(get_interview_timeout_sec()),
        )
        self.approvals = approvals or ApprovalWorkflow(self.ledger, self.votes, clock=clock)
        self.subscriptions = SubscriptionScheduler(bot, self.store, clock=clock)

    # === Owner commands ===
    async def setup(self, request: SetupRequest) -> GuildConfig:
        require_owner(request.actor_id)
        request.validate()
        return await self.store.provision(
            request.guild_id,
            vote_channel_id=request.vote_channel_id,
            welcome_channel_id=request.welcome_channel_id,
            ticket_category_id=request.ticket_category_id,
            approved_category_id=request.approved_category_id,
            rejected_category_id=request.rejected_category_id,
            approve_role_id=request.approve_role_id,
            sheet_id=request.sheet_id,
            now=self.clock(),
        )

    async def renew(self, request: RenewRequest) -> GuildConfig:
        require_owner(request.actor_id)
        request.validate()
        return await self.store.renew(request.guild_id, now=self.clock())

    # === Officer commands ===
    async def welcome_setup(self, member: Any, request: WelcomeSetupRequest) -> GuildConfig:
        cfg = require_config(self.store, request.guild_id, now=self.clock())
        require_officer(
            member,
            cfg,
            reason="❌ Only migration officers can set the welcome message.",
        )
        request.validate()
        return await self.store.set_welcome_message(request.guild_id, request.message.strip())

    def ticket_config(self, guild_id: Optional[int], channel: Any) -> GuildConfig:
        cfg = require_config(self.store, guild_id, now=self.clock())
        require_ticket_channel(channel, cfg)
        return cfg

    async def decide(self, channel: Any, member: Any, request: DecisionRequest) -> ApprovalResult:
        cfg = self.ticket_config(request.guild_id, channel)
        request.validate()
        result = await self.approvals.decide(channel, member, cfg, request)
        if result.ledger_written:
            try:
                await channel.send(decision_notice(request))
            except Exception:
                log.warning(
                    "decision notice not posted",
                    exc_info=True,
                    extra={"ticket": request.ticket_id},
                )
        return result

    # === Applicant commands ===
    async def start_interview(self, channel: Any, request: FillDetailsRequest) -> TicketSession:
        cfg = self.ticket_config(request.guild_id, channel)
        request.validate()
        return await self.interviews.start(channel, cfg, request)

    async def run_interview(
        self,
        session: TicketSession,
        channel: Any,
        *,
        first_prompt: Callable[[str], Any],
    ) -> SessionState:
        return await self.interviews.run(session, channel, first_prompt=first_prompt)

    # === Events ===
    async def greet(self, member: Any) -> Optional[Any]:
        return await greet_member(self.bot, self.store, member)


__all__ = ["MigrationService", "decision_notice"]
