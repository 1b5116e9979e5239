"""Scripted Q&A run inside a ticket channel.

Each answer is written to the ticket's ledger row before the next question is
posted. One interview may run per ticket channel at a time.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

from modules.common.logs import log as human_log
from shared.sheets.ledger import ANSWER_COLUMNS

from .config_store import GuildConfig
from .errors import ExternalUnavailable, InterviewInProgress
from .ledger import LedgerClient
from .requests import FillDetailsRequest
from .store import InMemoryKeyedStore, KeyedStore
from .votes import VoteCoordinator

log = logging.getLogger("migration.interview")

DEFAULT_TIMEOUT_SEC = 600.0


@dataclass(frozen=True)
class Question:
    column: str
    prompt: str


QUESTIONS: tuple[Question, ...] = (
    Question(ANSWER_COLUMNS[0], "📝 **Please enter your in-game name**"),
    Question(ANSWER_COLUMNS[1], "⚡ **What is your current power?**"),
    Question(ANSWER_COLUMNS[2], "⚔️ **What are your total kill points?**"),
    Question(ANSWER_COLUMNS[3], "👑 **What is your VIP level?**"),
)

COMPLETION_TEXT = (
    "✅ **Details recorded. Please upload screenshots of your ROK profile, Bag, "
    "Commanders/ Equipments and wait for officers.**"
)
WRITE_FAILED_TEXT = (
    "⚠️ The form was interrupted before your answer was saved. "
    "Run /fill-details again to restart it."
)
PROMPT_FAILED_TEXT = (
    "⚠️ The next question could not be posted. Answers given so far are saved. "
    "Run /fill-details again to restart it."
)


class SessionState(enum.Enum):
    AWAITING = "awaiting"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class TicketSession:
    channel_id: int
    ticket_id: str
    sheet_id: str
    answerer_id: int
    questions: Sequence[Question] = QUESTIONS
    row_ref: Optional[int] = None
    step_index: int = 0
    state: SessionState = SessionState.AWAITING
    answers: list[str] = field(default_factory=list)

    @property
    def current(self) -> Question:
        return self.questions[self.step_index]

    def advance(self) -> None:
        if self.state is not SessionState.AWAITING:
            raise RuntimeError(f"session is {self.state.value}")
        if self.step_index + 1 < len(self.questions):
            self.step_index += 1
        else:
            self.state = SessionState.COMPLETED


WaitFor = Callable[..., Awaitable[Any]]
Send = Callable[[str], Awaitable[Any]]


class InterviewCoordinator:
    """Owns the active-session map and drives each interview to completion."""

    def __init__(
        self,
        ledger: LedgerClient,
        votes: VoteCoordinator,
        *,
        wait_for: WaitFor,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        sessions: Optional[KeyedStore[int, TicketSession]] = None,
        questions: Sequence[Question] = QUESTIONS,
    ) -> None:
        self._ledger = ledger
        self._votes = votes
        self._wait_for = wait_for
        self._timeout = timeout
        self._sessions: KeyedStore[int, TicketSession] = sessions or InMemoryKeyedStore()
        self._questions = tuple(questions)

    def is_active(self, channel_id: int) -> bool:
        return self._sessions.contains(channel_id)

    def get(self, channel_id: int) -> Optional[TicketSession]:
        return self._sessions.get(channel_id)

    async def start(
        self,
        channel: Any,
        cfg: GuildConfig,
        request: FillDetailsRequest,
    ) -> TicketSession:
        """Claim the channel, open its vote and resolve the ledger row.

        The claim happens before the first ``await`` so a second invocation
        arriving while this one is suspended is rejected.
        """

        if self._sessions.contains(request.channel_id):
            raise InterviewInProgress(request.channel_id)

        session = TicketSession(
            channel_id=request.channel_id,
            ticket_id=request.ticket_id,
            sheet_id=cfg.sheet_id,
            answerer_id=request.answerer_id,
            questions=self._questions,
        )
        self._sessions.set(request.channel_id, session)
        try:
            await self._votes.ensure_vote(channel, cfg)
            session.row_ref = await self._ledger.ensure_row(
                cfg.sheet_id, request.ticket_id, request.applicant_name
            )
        except BaseException:
            self._sessions.delete(request.channel_id)
            raise

        human_log.event(
            "info",
            "📝",
            "interview_start",
            ticket=request.ticket_id,
            row=session.row_ref,
            user=request.answerer_id,
        )
        return session

    def _check(self, session: TicketSession) -> Callable[[Any], bool]:
        def check(message: Any) -> bool:
            author = getattr(message, "author", None)
            if getattr(author, "id", None) != session.answerer_id:
                return False
            if getattr(getattr(message, "channel", None), "id", None) != session.channel_id:
                return False
            return bool((getattr(message, "content", "") or "").strip())

        return check

    async def record_answer(self, session: TicketSession, text: str) -> None:
        """Write ``text`` to the current question's cell, then advance."""

        if session.row_ref is None:
            raise RuntimeError("ledger row not resolved")
        question = session.current
        await self._ledger.update_cell(session.sheet_id, session.row_ref, question.column, text)
        session.answers.append(text)
        session.advance()

    @staticmethod
    async def _say(send: Send, text: str) -> None:
        try:
            await send(text)
        except Exception as exc:
            raise ExternalUnavailable("chat.send", exc) from exc

    async def _abort(self, session: TicketSession, channel: Any, notice: str, reason: str) -> SessionState:
        session.state = SessionState.FAILED
        log.warning(
            "interview aborted",
            exc_info=True,
            extra={"ticket": session.ticket_id, "step": session.step_index, "reason": reason},
        )
        try:
            await channel.send(notice)
        except Exception:
            log.warning("interview failure notice not sent", exc_info=True)
        return session.state

    async def run(self, session: TicketSession, channel: Any, *, first_prompt: Send) -> SessionState:
        """Ask every question in order until done, timed out or failed.

        A failed ledger write and a failed prompt end the session with
        different notices. Once the last answer is stored the session is
        COMPLETED even if the completion notice cannot be posted. The
        active-session claim is always released on exit.
        """

        check = self._check(session)
        try:
            try:
                await self._say(first_prompt, session.current.prompt)
            except ExternalUnavailable:
                return await self._abort(session, channel, PROMPT_FAILED_TEXT, "prompt")

            while session.state is SessionState.AWAITING:
                try:
                    message = await self._wait_for("message", check=check, timeout=self._timeout)
                except asyncio.TimeoutError:
                    session.state = SessionState.TIMED_OUT
                    human_log.event(
                        "info",
                        "⌛",
                        "interview_timeout",
                        ticket=session.ticket_id,
                        step=session.step_index,
                    )
                    break

                try:
                    await self.record_answer(session, message.content)
                except ExternalUnavailable:
                    return await self._abort(session, channel, WRITE_FAILED_TEXT, "write")

                if session.state is SessionState.AWAITING:
                    try:
                        await self._say(channel.send, session.current.prompt)
                    except ExternalUnavailable:
                        return await self._abort(session, channel, PROMPT_FAILED_TEXT, "prompt")
                    continue

                human_log.event(
                    "info",
                    "✅",
                    "interview_complete",
                    ticket=session.ticket_id,
                    row=session.row_ref,
                )
                try:
                    await self._say(channel.send, COMPLETION_TEXT)
                except ExternalUnavailable:
                    log.warning(
                        "completion notice not sent",
                        exc_info=True,
                        extra={"ticket": session.ticket_id},
                    )
        finally:
            self._sessions.delete(session.channel_id)
        return session.state


__all__ = [
    "COMPLETION_TEXT",
    "InterviewCoordinator",
    "PROMPT_FAILED_TEXT",
    "QUESTIONS",
    "Question",
    "SessionState",
    "TicketSession",
    "WRITE_FAILED_TEXT",
]
