"""User-facing error taxonomy for migration ticket commands.

Every error carries a ``message`` that is safe to show the invoking user.
Expected errors terminate the current command and are never retried.
"""

from __future__ import annotations


class MigrationError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotConfigured(MigrationError):
    def __init__(self, guild_id: int | None = None) -> None:
        self.guild_id = guild_id
        super().__init__("❌ This server has not been set up yet. Ask the bot owner to run /setup.")


class Disabled(MigrationError):
    def __init__(self, guild_id: int | None = None) -> None:
        self.guild_id = guild_id
        super().__init__(
            "❌ Service inactive: the subscription for this server has expired. "
            "Contact the bot owner to continue."
        )


class Forbidden(MigrationError):
    def __init__(self, reason: str = "❌ No permission.") -> None:
        super().__init__(reason)


class TicketNotFound(MigrationError):
    def __init__(self, ticket_id: str) -> None:
        self.ticket_id = ticket_id
        super().__init__(
            f"❌ Ticket `{ticket_id}` not found in the ledger. "
            "The applicant must run /fill-details first."
        )


class WrongContext(MigrationError):
    def __init__(self, reason: str = "❌ Ticket only command.") -> None:
        super().__init__(reason)


class InterviewInProgress(MigrationError):
    def __init__(self, channel_id: int) -> None:
        self.channel_id = channel_id
        super().__init__("⏳ An interview is already running in this ticket.")


class InvalidRequest(MigrationError):
    def __init__(self, field: str, problem: str) -> None:
        self.field = field
        super().__init__(f"❌ Invalid `{field}`: {problem}")


class ExternalUnavailable(MigrationError):
    """A chat-gateway or ledger call failed."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"⚠️ An external service is unavailable ({operation}). Please try again shortly."
        )


__all__ = [
    "Disabled",
    "ExternalUnavailable",
    "Forbidden",
    "InterviewInProgress",
    "InvalidRequest",
    "MigrationError",
    "NotConfigured",
    "TicketNotFound",
    "WrongContext",
]
