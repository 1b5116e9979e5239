"""Slash-command surface for migration tickets."""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from modules.common.logs import channel_label, user_label
from modules.migration import MigrationError, MigrationService
from modules.migration.errors import InterviewInProgress
from modules.migration.requests import (
    DecisionRequest,
    FillDetailsRequest,
    Outcome,
    RenewRequest,
    SetupRequest,
    WelcomeSetupRequest,
)
from shared.logging import set_trace_id
from shared.sheets.core import service_account_email

log = logging.getLogger("migration.cog")

GENERIC_FAILURE = "❌ Something went wrong while handling that command."
INTERVIEW_STARTED = "📝 Interview started. Answer each question in this channel."


async def _reply(interaction: discord.Interaction, content: str, *, ephemeral: bool = True) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=ephemeral)
    else:
        await interaction.response.send_message(content, ephemeral=ephemeral)


def _expiry_label(cfg) -> str:
    return discord.utils.format_dt(cfg.expires_at, style="D")


class MigrationCog(commands.Cog):
    """Migration tickets: setup, interview, vote and officer decisions."""

    def __init__(self, bot: commands.Bot, service: Optional[MigrationService] = None) -> None:
        self.bot = bot
        self.service = service or MigrationService(bot)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        set_trace_id()
        return True

    async def cog_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        original = getattr(error, "original", error)
        command = getattr(interaction.command, "name", "-")
        if isinstance(original, MigrationError):
            log.info(
                "command refused",
                extra={
                    "command": command,
                    "error": type(original).__name__,
                    "user": user_label(interaction.guild, interaction.user.id),
                },
            )
            content = original.message
        else:
            log.error(
                "command failed",
                exc_info=original,
                extra={"command": command},
            )
            content = GENERIC_FAILURE
        try:
            await _reply(interaction, content)
        except discord.HTTPException:
            log.warning("error reply not delivered", exc_info=True, extra={"command": command})

    # === Owner ===
    @app_commands.command(name="setup", description="Setup migration bot for this server")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    @app_commands.describe(
        vote_channel="Channel where voting messages will be posted",
        welcome_channel="Channel where welcome messages will be sent",
        ticket_category="Category where ticket channels are created",
        approved_category="Category where approved tickets are moved",
        rejected_category="Category where rejected tickets are moved",
        approve_role="Role allowed to approve or reject tickets",
        sheet_id="Google Sheet ID (share the sheet with the bot's service account)",
    )
    async def setup_command(
        self,
        interaction: discord.Interaction,
        vote_channel: discord.TextChannel,
        welcome_channel: discord.TextChannel,
        ticket_category: discord.CategoryChannel,
        approved_category: discord.CategoryChannel,
        rejected_category: discord.CategoryChannel,
        approve_role: discord.Role,
        sheet_id: str,
    ) -> None:
        request = SetupRequest(
            guild_id=interaction.guild_id,
            actor_id=interaction.user.id,
            vote_channel_id=vote_channel.id,
            welcome_channel_id=welcome_channel.id,
            ticket_category_id=ticket_category.id,
            approved_category_id=approved_category.id,
            rejected_category_id=rejected_category.id,
            approve_role_id=approve_role.id,
            sheet_id=sheet_id,
        )
        cfg = await self.service.setup(request)
        lines = [
            "✅ Setup completed. You have been subscribed for 30 days "
            f"(until {_expiry_label(cfg)}).",
        ]
        email = service_account_email()
        if email:
            lines.append(f"Make sure the sheet is shared with `{email}` as an editor.")
        await _reply(interaction, "\n".join(lines))

    @app_commands.command(name="continue", description="Extend bot service for this server (Owner only)")
    @app_commands.guild_only()
    async def continue_command(self, interaction: discord.Interaction) -> None:
        cfg = await self.service.renew(
            RenewRequest(guild_id=interaction.guild_id, actor_id=interaction.user.id)
        )
        await _reply(
            interaction,
            f"✅ Service extended by 30 days (until {_expiry_label(cfg)}).",
        )

    # === Officers ===
    @app_commands.command(name="welcome-setup", description="Set a custom welcome message for this server")
    @app_commands.guild_only()
    @app_commands.describe(message="Welcome message (use {user} for mention)")
    async def welcome_setup(self, interaction: discord.Interaction, message: str) -> None:
        await self.service.welcome_setup(
            interaction.user,
            WelcomeSetupRequest(
                guild_id=interaction.guild_id,
                actor_id=interaction.user.id,
                message=message,
            ),
        )
        await _reply(interaction, "✅ Welcome message updated successfully.")

    async def _decide(
        self,
        interaction: discord.Interaction,
        outcome: Outcome,
        reason: Optional[str] = None,
    ) -> None:
        channel = interaction.channel
        request = DecisionRequest(
            guild_id=interaction.guild_id,
            channel_id=channel.id,
            ticket_id=getattr(channel, "name", ""),
            outcome=outcome,
            actor_id=interaction.user.id,
            actor_name=interaction.user.name,
            reason=(reason or "").strip() or None,
        )
        # refuse fast, before the ledger round-trips make deferral necessary
        self.service.ticket_config(interaction.guild_id, channel)
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.service.decide(channel, interaction.user, request)
        await _reply(interaction, result.summary())

    @app_commands.command(name="approve", description="Approve this ticket")
    @app_commands.guild_only()
    async def approve(self, interaction: discord.Interaction) -> None:
        await self._decide(interaction, Outcome.APPROVED)

    @app_commands.command(name="reject", description="Reject this ticket")
    @app_commands.guild_only()
    @app_commands.describe(reason="Reason")
    async def reject(self, interaction: discord.Interaction, reason: Optional[str] = None) -> None:
        await self._decide(interaction, Outcome.REJECTED, reason)

    # === Applicants ===
    @app_commands.command(name="fill-details", description="Fill migration details")
    @app_commands.guild_only()
    async def fill_details(self, interaction: discord.Interaction) -> None:
        channel = interaction.channel
        request = FillDetailsRequest(
            guild_id=interaction.guild_id,
            channel_id=channel.id,
            ticket_id=getattr(channel, "name", ""),
            answerer_id=interaction.user.id,
            applicant_name=interaction.user.name,
        )
        self.service.ticket_config(interaction.guild_id, channel)
        if self.service.interviews.is_active(channel.id):
            raise InterviewInProgress(channel.id)

        # start_interview errors surface as the first, ephemeral, followup
        await interaction.response.defer(ephemeral=True, thinking=True)
        session = await self.service.start_interview(channel, request)
        log.info(
            "interview started",
            extra={
                "channel": channel_label(interaction.guild, channel.id),
                "row": session.row_ref,
            },
        )

        async def first_prompt(text: str) -> None:
            try:
                await interaction.followup.send(INTERVIEW_STARTED, ephemeral=True)
            except discord.HTTPException:
                log.warning("interview ack not sent", exc_info=True)
            await channel.send(text)

        await self.service.run_interview(session, channel, first_prompt=first_prompt)

    # === Events ===
    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        await self.service.greet(member)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(MigrationCog(bot))
