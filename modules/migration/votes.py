"""Community vote messages, one per ticket channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from modules.common.logs import log as human_log

from .config_store import GuildConfig
from .errors import ExternalUnavailable
from .store import InMemoryKeyedStore, KeyedStore

log = logging.getLogger("migration.votes")

YES_EMOJI = "✅"
NO_EMOJI = "❌"


@dataclass(frozen=True)
class VoteRecord:
    ticket_channel_id: int
    ticket_id: str
    vote_channel_id: int
    message_id: int


@dataclass(frozen=True)
class VoteTally:
    yes: int
    no: int

    def describe(self) -> str:
        return f"{YES_EMOJI} Yes: {self.yes} | {NO_EMOJI} No: {self.no}"


def vote_open_text(ticket_id: str) -> str:
    return f"🗳️ **Vote for {ticket_id.upper()}**"


def vote_closed_text(ticket_id: str, tally: VoteTally) -> str:
    return f"🔒 **VOTING CLOSED — {ticket_id.upper()}**\n{tally.describe()}"


def _reaction_count(message: Any, emoji: str) -> int:
    for reaction in getattr(message, "reactions", None) or ():
        if str(getattr(reaction, "emoji", "")) != emoji:
            continue
        count = int(getattr(reaction, "count", 0) or 0)
        # the bot's own seed reaction is not a vote
        if getattr(reaction, "me", False):
            count -= 1
        return max(0, count)
    return 0


class VoteCoordinator:
    """Creates, tracks and closes the vote message for each ticket.

    The ticket-channel → vote-message map is process memory: after a restart
    it is empty and closing a vote finds nothing to close.
    """

    def __init__(self, bot: Any, records: Optional[KeyedStore[int, VoteRecord]] = None) -> None:
        self.bot = bot
        self._records: KeyedStore[int, VoteRecord] = records or InMemoryKeyedStore()
        self._pending: set[int] = set()

    def get(self, ticket_channel_id: int) -> Optional[VoteRecord]:
        return self._records.get(ticket_channel_id)

    async def _resolve_channel(self, channel_id: int) -> Any:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def ensure_vote(self, ticket_channel: Any, cfg: GuildConfig) -> Optional[VoteRecord]:
        """Post the ticket's vote message unless one already exists.

        Failures are logged and swallowed: the interview goes ahead even when
        the vote channel is unreachable.
        """

        channel_id = int(ticket_channel.id)
        existing = self._records.get(channel_id)
        if existing is not None:
            return existing
        if channel_id in self._pending:
            return None

        ticket_id = str(getattr(ticket_channel, "name", channel_id))
        self._pending.add(channel_id)
        try:
            try:
                vote_channel = await self._resolve_channel(cfg.vote_channel_id)
                message = await vote_channel.send(vote_open_text(ticket_id))
            except Exception:
                log.warning(
                    "vote message not posted",
                    exc_info=True,
                    extra={"ticket": ticket_id, "vote_channel_id": cfg.vote_channel_id},
                )
                human_log.event(
                    "warning",
                    "⚠️",
                    "vote_open",
                    ticket=ticket_id,
                    result="error",
                    reason="vote_channel_unavailable",
                )
                return None

            record = VoteRecord(
                ticket_channel_id=channel_id,
                ticket_id=ticket_id,
                vote_channel_id=cfg.vote_channel_id,
                message_id=int(message.id),
            )
            self._records.set(channel_id, record)

            for emoji in (YES_EMOJI, NO_EMOJI):
                try:
                    await message.add_reaction(emoji)
                except Exception:
                    log.warning(
                        "vote reaction not attached",
                        exc_info=True,
                        extra={"ticket": ticket_id, "emoji": emoji},
                    )
        finally:
            self._pending.discard(channel_id)

        human_log.event("info", "🗳️", "vote_open", ticket=ticket_id, message=record.message_id)
        return record

    async def close_vote(self, ticket_channel: Any) -> Optional[VoteTally]:
        """Close the ticket's vote and return the final tally.

        Returns ``None`` when no vote is tracked. The record is claimed before
        any network call, so a concurrent or repeated close sees ``None`` and
        never edits or counts twice. Raises :class:`ExternalUnavailable` when
        a tracked vote message could not be read or edited.
        """

        channel_id = int(getattr(ticket_channel, "id", ticket_channel))
        record = self._records.pop(channel_id)
        if record is None:
            return None

        try:
            vote_channel = await self._resolve_channel(record.vote_channel_id)
            message = await vote_channel.fetch_message(record.message_id)
            tally = VoteTally(
                yes=_reaction_count(message, YES_EMOJI),
                no=_reaction_count(message, NO_EMOJI),
            )
            await message.edit(content=vote_closed_text(record.ticket_id, tally))
        except Exception as exc:
            log.warning(
                "vote message not closed",
                exc_info=True,
                extra={"ticket": record.ticket_id, "message_id": record.message_id},
            )
            raise ExternalUnavailable("vote.close", exc) from exc

        human_log.event(
            "info",
            "🔒",
            "vote_closed",
            ticket=record.ticket_id,
            yes=tally.yes,
            no=tally.no,
        )
        return tally


__all__ = [
    "NO_EMOJI",
    "VoteCoordinator",
    "VoteRecord",
    "VoteTally",
    "YES_EMOJI",
    "vote_closed_text",
    "vote_open_text",
]
