"""Approve/reject transition across the vote, the ledger and channel placement.

The ledger row is the source of truth. Closing the vote and moving the channel
are best-effort, and a decision that reached the ledger but not the channel is
reported as partial rather than complete.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from modules.common.logs import log as human_log
from shared.sheets.ledger import COL_DECIDED_AT, COL_DECIDED_BY, COL_STATUS

from .config_store import GuildConfig, utcnow
from .errors import ExternalUnavailable, TicketNotFound
from .guards import require_officer
from .ledger import LedgerClient
from .requests import DecisionRequest, Outcome
from .votes import VoteCoordinator, VoteTally

log = logging.getLogger("migration.approval")

STEP_LEDGER = "ledger"
STEP_MOVE = "move"


class ApprovalStatus(enum.Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"


def format_decided_at(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


@dataclass
class ApprovalResult:
    ticket_id: str
    outcome: Outcome
    row_ref: int
    tally: Optional[VoteTally] = None
    vote_failed: bool = False
    ledger_written: bool = False
    channel_moved: bool = False
    failed_step: Optional[str] = None
    ledger_timed_out: bool = False

    @property
    def status(self) -> ApprovalStatus:
        if self.failed_step is None:
            return ApprovalStatus.COMPLETE
        return ApprovalStatus.PARTIAL

    def summary(self) -> str:
        """Officer-facing acknowledgement."""

        label = f"`{self.ticket_id}`"
        if self.failed_step == STEP_LEDGER and self.ledger_timed_out:
            lines = [
                f"⚠️ Ticket {label} may not be marked {self.outcome.value}: the ledger did not "
                "answer in time and the write may still land. Check the sheet before "
                "running the command again.",
            ]
        elif self.failed_step == STEP_LEDGER:
            lines = [
                f"⚠️ Ticket {label} was **not** marked {self.outcome.value}: "
                "the ledger could not be updated. Run the command again.",
            ]
        elif self.failed_step == STEP_MOVE:
            lines = [
                f"⚠️ Ticket {label} is recorded as **{self.outcome.value}** in the ledger, "
                f"but the channel could not be moved to the {self.outcome.verb} category. "
                "Move it manually or run the command again.",
            ]
        else:
            lines = [f"✅ Ticket {label} {self.outcome.verb}."]
        if self.tally is not None:
            lines.append(f"Final vote — {self.tally.describe()}")
        elif self.vote_failed:
            lines.append("The vote message could not be closed.")
        else:
            lines.append("No open vote was tracked for this ticket.")
        return "\n".join(lines)


class ApprovalWorkflow:
    def __init__(
        self,
        ledger: LedgerClient,
        votes: VoteCoordinator,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._votes = votes
        self._clock = clock

    async def _resolve_category(self, channel: Any, category_id: int) -> Any:
        guild = getattr(channel, "guild", None)
        category = guild.get_channel(category_id) if guild is not None else None
        if category is None and guild is not None:
            category = await guild.fetch_channel(category_id)
        if category is None:
            raise LookupError(f"category {category_id} not found")
        return category

    async def _write_decision(self, cfg: GuildConfig, row: int, request: DecisionRequest) -> None:
        decided_at = format_decided_at(self._clock())
        for column, value in (
            (COL_STATUS, request.outcome.value),
            (COL_DECIDED_BY, request.actor_name),
            (COL_DECIDED_AT, decided_at),
        ):
            await self._ledger.update_cell(cfg.sheet_id, row, column, value)

    async def decide(
        self,
        channel: Any,
        member: Any,
        cfg: GuildConfig,
        request: DecisionRequest,
    ) -> ApprovalResult:
        """Run the approve/reject steps in order.

        Raises ``Forbidden`` or ``TicketNotFound`` (or ``ExternalUnavailable``
        from the row lookup) before any side effect happens.
        """

        require_officer(member, cfg)

        row = await self._ledger.find_row(cfg.sheet_id, request.ticket_id)
        if row is None:
            raise TicketNotFound(request.ticket_id)

        result = ApprovalResult(ticket_id=request.ticket_id, outcome=request.outcome, row_ref=row)

        try:
            result.tally = await self._votes.close_vote(channel)
        except ExternalUnavailable:
            result.vote_failed = True

        try:
            await self._write_decision(cfg, row, request)
        except ExternalUnavailable as exc:
            result.failed_step = STEP_LEDGER
            result.ledger_timed_out = isinstance(exc.cause, (asyncio.TimeoutError, TimeoutError))
            human_log.event(
                "warning",
                "⚠️",
                "ticket_decision",
                ticket=request.ticket_id,
                outcome=request.outcome.value,
                result="partial",
                reason="ledger_timeout" if result.ledger_timed_out else "ledger_write_failed",
            )
            return result
        result.ledger_written = True

        target_id = (
            cfg.approved_category_id
            if request.outcome is Outcome.APPROVED
            else cfg.rejected_category_id
        )
        try:
            category = await self._resolve_category(channel, target_id)
            await channel.edit(
                category=category,
                reason=f"Migration ticket {request.outcome.verb} by {request.actor_name}",
            )
        except Exception:
            log.warning(
                "ticket channel not moved",
                exc_info=True,
                extra={"ticket": request.ticket_id, "category_id": target_id},
            )
            result.failed_step = STEP_MOVE
        else:
            result.channel_moved = True

        human_log.event(
            "info" if result.status is ApprovalStatus.COMPLETE else "warning",
            "⚖️",
            "ticket_decision",
            ticket=request.ticket_id,
            outcome=request.outcome.value,
            by=request.actor_name,
            result=result.status.value,
            reason=request.reason,
        )
        return result


__all__ = [
    "ApprovalResult",
    "ApprovalStatus",
    "ApprovalWorkflow",
    "STEP_LEDGER",
    "STEP_MOVE",
    "format_decided_at",
]
