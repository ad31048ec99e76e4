"""Moderation shortcuts: kick, ban, timeout and purge."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from codeshop_core.constants import MAX_PURGE_MESSAGES, MAX_TIMEOUT_MINUTES
from codeshop_core.logger import get_audit_logger, get_logger
from codeshop_core.utils.error_messages import get_error_message

logger = get_logger()
audit_logger = get_audit_logger()


def can_act_on(actor: discord.Member, target: discord.Member) -> bool:
    """The guild owner can act on anyone; others only on members ranked below them."""
    if target.id == actor.guild.owner_id:
        return False
    if actor.id == actor.guild.owner_id:
        return True
    return actor.top_role > target.top_role


class ModerationCog(commands.Cog):
    """Moderation commands gated by Discord's own permissions."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _refuse_hierarchy(self, interaction: discord.Interaction, member: discord.Member) -> bool:
        if can_act_on(interaction.user, member):
            return False
        await interaction.response.send_message(
            f"🚫 You can't moderate {member.mention}: their top role is not below yours.",
            ephemeral=True,
        )
        return True

    @app_commands.command(name="kick", description="Kick a member")
    @app_commands.guild_only()
    @app_commands.default_permissions(kick_members=True)
    @app_commands.checks.has_permissions(kick_members=True)
    async def kick(
        self, interaction: discord.Interaction, member: discord.Member, reason: Optional[str] = None
    ) -> None:
        if await self._refuse_hierarchy(interaction, member):
            return
        try:
            await member.kick(reason=reason)
        except discord.HTTPException as e:
            await interaction.response.send_message(
                get_error_message("moderation_failed", action="kick", target=member.mention, reason=e),
                ephemeral=True,
            )
            return

        audit_logger.info(f"{member} ({member.id}) kicked by {interaction.user.id}: {reason}")
        await interaction.response.send_message(f"👢 {member.mention} was kicked.", ephemeral=True)

    @app_commands.command(name="ban", description="Ban a member")
    @app_commands.describe(delete_days="Days of their messages to delete (0-7)")
    @app_commands.guild_only()
    @app_commands.default_permissions(ban_members=True)
    @app_commands.checks.has_permissions(ban_members=True)
    async def ban(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        reason: Optional[str] = None,
        delete_days: app_commands.Range[int, 0, 7] = 0,
    ) -> None:
        if await self._refuse_hierarchy(interaction, member):
            return
        try:
            await member.ban(reason=reason, delete_message_seconds=delete_days * 86400)
        except discord.HTTPException as e:
            await interaction.response.send_message(
                get_error_message("moderation_failed", action="ban", target=member.mention, reason=e),
                ephemeral=True,
            )
            return

        audit_logger.info(f"{member} ({member.id}) banned by {interaction.user.id}: {reason}")
        await interaction.response.send_message(f"🔨 {member.mention} was banned.", ephemeral=True)

    @app_commands.command(name="timeout", description="Time a member out")
    @app_commands.describe(minutes="Length of the timeout (0 removes it)")
    @app_commands.guild_only()
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def timeout(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        minutes: app_commands.Range[int, 0, MAX_TIMEOUT_MINUTES],
        reason: Optional[str] = None,
    ) -> None:
        if await self._refuse_hierarchy(interaction, member):
            return
        duration = timedelta(minutes=minutes) if minutes else None
        try:
            await member.timeout(duration, reason=reason)
        except discord.HTTPException as e:
            await interaction.response.send_message(
                get_error_message("moderation_failed", action="time out", target=member.mention, reason=e),
                ephemeral=True,
            )
            return

        if duration is None:
            audit_logger.info(f"Timeout removed from {member} ({member.id}) by {interaction.user.id}")
            await interaction.response.send_message(f"🔈 Timeout removed for {member.mention}.", ephemeral=True)
            return

        audit_logger.info(f"{member} ({member.id}) timed out {minutes}m by {interaction.user.id}: {reason}")
        await interaction.response.send_message(
            f"🔇 {member.mention} timed out for {minutes} minute(s).", ephemeral=True
        )

    @app_commands.command(name="purge", description="Delete recent messages in this channel")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    async def purge(
        self,
        interaction: discord.Interaction,
        amount: app_commands.Range[int, 1, MAX_PURGE_MESSAGES],
    ) -> None:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message("❌ Purge only works in text channels.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            deleted = await channel.purge(limit=amount)
        except discord.HTTPException as e:
            await interaction.followup.send(
                get_error_message("moderation_failed", action="purge", target=channel.mention, reason=e),
                ephemeral=True,
            )
            return

        audit_logger.info(f"{len(deleted)} message(s) purged in #{channel} by {interaction.user.id}")
        await interaction.followup.send(f"🧹 Deleted {len(deleted)} message(s).", ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(ModerationCog(bot))
