"""Live stock board and leaderboard setup plus the periodic refresh sweep."""

from __future__ import annotations

from typing import Literal, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from codeshop_core.live_displays import DisplayKind
from codeshop_core.logger import get_audit_logger, get_logger
from codeshop_core.utils import create_embed, discord_timestamp
from codeshop_core.utils.admin_checks import admin_only
from codeshop_core.utils.error_messages import get_error_message

logger = get_logger()
audit_logger = get_audit_logger()

KIND_CHOICES = Literal["stock", "leaderboard"]


class LiveDisplaysCog(commands.Cog):
    """Publishes live displays and keeps them fresh."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._restored = False

    async def cog_load(self) -> None:
        interval = self.bot.config.live_displays.refresh_interval_seconds
        self.refresh_sweep.change_interval(seconds=interval)
        self.refresh_sweep.start()
        logger.info(f"Live display sweep started (every {interval}s)")

    async def cog_unload(self) -> None:
        self.refresh_sweep.cancel()
        logger.info("Live display sweep stopped")

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.bot.displays.restore([guild.id])

    @tasks.loop(seconds=60)
    async def refresh_sweep(self) -> None:
        try:
            await self.bot.scheduler.sweep()
        except Exception as e:
            logger.error(f"Live display sweep failed: {e}", exc_info=True)

    @refresh_sweep.before_loop
    async def before_refresh_sweep(self) -> None:
        await self.bot.wait_until_ready()
        # The registry must be rebuilt before the first sweep reads it.
        if self._restored:
            return
        self._restored = True
        try:
            restored = await self.bot.scheduler.start(guild.id for guild in self.bot.guilds)
        except Exception as e:
            logger.error(f"Failed to restore live displays: {e}", exc_info=True)
            return
        logger.info(f"Live display registry ready ({restored} display(s) restored)")

    async def _publish(
        self,
        interaction: discord.Interaction,
        kind: DisplayKind,
        channel: Optional[discord.TextChannel],
    ) -> None:
        target = channel or interaction.channel
        await interaction.response.defer(ephemeral=True)

        try:
            artifact = await self.bot.scheduler.build_artifact(interaction.guild_id, kind)
            channel_id, message_id = await self.bot.messenger.send_message(target, artifact)
        except discord.Forbidden:
            await interaction.followup.send(
                get_error_message("channel_unusable", channel=target.mention),
                ephemeral=True,
            )
            return
        except Exception as e:
            logger.exception(f"Failed to publish {kind.value} display")
            await interaction.followup.send(get_error_message("generic", error=e), ephemeral=True)
            return

        await self.bot.displays.register(interaction.guild_id, kind, channel_id, message_id)
        audit_logger.info(
            f"{kind.value} display published in #{target} (guild {interaction.guild_id}) "
            f"by {interaction.user.id}"
        )
        await interaction.followup.send(
            f"✅ Live {kind.value} display published in {target.mention}. "
            "It refreshes automatically.",
            ephemeral=True,
        )

    @app_commands.command(name="setupstock", description="Publish the live stock board")
    @app_commands.describe(channel="Channel for the board (defaults to this one)")
    @app_commands.guild_only()
    @admin_only()
    async def setup_stock(
        self, interaction: discord.Interaction, channel: Optional[discord.TextChannel] = None
    ) -> None:
        await self._publish(interaction, DisplayKind.STOCK, channel)

    @app_commands.command(name="setupleaderboard", description="Publish the live buyer leaderboard")
    @app_commands.describe(channel="Channel for the leaderboard (defaults to this one)")
    @app_commands.guild_only()
    @admin_only()
    async def setup_leaderboard(
        self, interaction: discord.Interaction, channel: Optional[discord.TextChannel] = None
    ) -> None:
        await self._publish(interaction, DisplayKind.LEADERBOARD, channel)

    @app_commands.command(name="refreshdisplays", description="Queue a refresh of the live displays")
    @app_commands.guild_only()
    @admin_only()
    async def refresh_displays(self, interaction: discord.Interaction) -> None:
        self.bot.scheduler.enqueue_all(interaction.guild_id)
        await interaction.response.send_message("🔄 Refresh queued.", ephemeral=True)

    @app_commands.command(name="removedisplay", description="Stop updating a live display")
    @app_commands.describe(kind="Which display to stop updating")
    @app_commands.guild_only()
    @admin_only()
    async def remove_display(self, interaction: discord.Interaction, kind: KIND_CHOICES) -> None:
        display_kind = DisplayKind(kind)
        if self.bot.displays.lookup(interaction.guild_id, display_kind) is None:
            await interaction.response.send_message(
                f"ℹ️ No {kind} display is configured.", ephemeral=True
            )
            return

        await self.bot.displays.unregister(interaction.guild_id, display_kind)
        audit_logger.info(f"{kind} display removed in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(
            f"🗑️ The {kind} display will no longer be updated.", ephemeral=True
        )

    @app_commands.command(name="displaystatus", description="Show where the live displays are")
    @app_commands.guild_only()
    @admin_only()
    async def display_status(self, interaction: discord.Interaction) -> None:
        embed = create_embed(title="📺 Live Displays", color=discord.Color.blurple())
        for kind in DisplayKind:
            handle = self.bot.displays.lookup(interaction.guild_id, kind)
            if handle is None:
                value = "Not configured"
            else:
                refreshed = self.bot.displays.last_refreshed(interaction.guild_id, kind)
                value = f"<#{handle.channel_id}> (message `{handle.message_id}`)"
                if refreshed:
                    value += f"\nLast refresh: {discord_timestamp(refreshed, 'R')}"
            embed.add_field(name=kind.value.capitalize(), value=value, inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(LiveDisplaysCog(bot))
