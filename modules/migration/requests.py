"""Typed command requests validated before they reach the workflows."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidRequest

WELCOME_MESSAGE_LIMIT = 2000
REASON_LIMIT = 500


class Outcome(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def verb(self) -> str:
        return "approved" if self is Outcome.APPROVED else "rejected"


def _positive_id(field: str, value: object) -> int:
    if isinstance(value, bool):
        raise InvalidRequest(field, "expected a Discord ID")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidRequest(field, "expected a Discord ID") from None
    if number <= 0:
        raise InvalidRequest(field, "expected a Discord ID")
    return number


@dataclass(frozen=True)
class SetupRequest:
    guild_id: int
    actor_id: int
    vote_channel_id: int
    welcome_channel_id: int
    ticket_category_id: int
    approved_category_id: int
    rejected_category_id: int
    approve_role_id: int
    sheet_id: str

    def validate(self) -> "SetupRequest":
        for field in (
            "guild_id",
            "vote_channel_id",
            "welcome_channel_id",
            "ticket_category_id",
            "approved_category_id",
            "rejected_category_id",
            "approve_role_id",
        ):
            _positive_id(field, getattr(self, field))
        sheet = (self.sheet_id or "").strip()
        if not sheet:
            raise InvalidRequest("sheet_id", "must not be blank")
        if any(ch.isspace() for ch in sheet):
            raise InvalidRequest("sheet_id", "must be the spreadsheet key without spaces")
        if len({self.approved_category_id, self.rejected_category_id, self.ticket_category_id}) != 3:
            raise InvalidRequest(
                "categories",
                "ticket, approved and rejected categories must all differ",
            )
        return self


@dataclass(frozen=True)
class RenewRequest:
    guild_id: int
    actor_id: int

    def validate(self) -> "RenewRequest":
        _positive_id("guild_id", self.guild_id)
        return self


@dataclass(frozen=True)
class FillDetailsRequest:
    guild_id: int
    channel_id: int
    ticket_id: str
    answerer_id: int
    applicant_name: str

    def validate(self) -> "FillDetailsRequest":
        _positive_id("channel_id", self.channel_id)
        _positive_id("answerer_id", self.answerer_id)
        if not (self.ticket_id or "").strip():
            raise InvalidRequest("ticket", "channel has no name")
        return self


@dataclass(frozen=True)
class DecisionRequest:
    guild_id: int
    channel_id: int
    ticket_id: str
    outcome: Outcome
    actor_id: int
    actor_name: str
    reason: Optional[str] = None

    def validate(self) -> "DecisionRequest":
        _positive_id("channel_id", self.channel_id)
        if not isinstance(self.outcome, Outcome):
            raise InvalidRequest("outcome", "must be APPROVED or REJECTED")
        if not (self.ticket_id or "").strip():
            raise InvalidRequest("ticket", "channel has no name")
        if self.reason is not None and len(self.reason) > REASON_LIMIT:
            raise InvalidRequest("reason", f"must be at most {REASON_LIMIT} characters")
        return self


@dataclass(frozen=True)
class WelcomeSetupRequest:
    guild_id: int
    actor_id: int
    message: str

    def validate(self) -> "WelcomeSetupRequest":
        text = (self.message or "").strip()
        if not text:
            raise InvalidRequest("message", "must not be blank")
        if len(text) > WELCOME_MESSAGE_LIMIT:
            raise InvalidRequest("message", f"must be at most {WELCOME_MESSAGE_LIMIT} characters")
        return self


__all__ = [
    "DecisionRequest",
    "FillDetailsRequest",
    "Outcome",
    "RenewRequest",
    "SetupRequest",
    "WelcomeSetupRequest",
]
