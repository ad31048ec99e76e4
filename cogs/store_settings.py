"""Per-guild store settings: staff channels, alerts and display styling."""

from __future__ import annotations

from typing import Literal, Optional

import discord
from discord import app_commands
from discord.ext import commands

from codeshop_core.live_displays import DisplayKind
from codeshop_core.logger import get_audit_logger
from codeshop_core.renderer import parse_color
from codeshop_core.utils import create_embed
from codeshop_core.utils.admin_checks import admin_only
from codeshop_core.utils.error_messages import get_error_message

audit_logger = get_audit_logger()

VISIBLE_SETTINGS = (
    ("order_channel", "Order log channel"),
    ("alert_channel", "Low stock alert channel"),
    ("low_stock_threshold", "Low stock threshold"),
    ("embed_color", "Display color"),
    ("stock_image", "Stock board image"),
    ("leaderboard_image", "Leaderboard image"),
)


class StoreSettingsCog(commands.Cog):
    """Store configuration commands (admin only)."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @app_commands.command(name="setorderchannel", description="Channel where new orders are announced")
    @app_commands.guild_only()
    @admin_only()
    async def set_order_channel(self, interaction: discord.Interaction, channel: discord.TextChannel) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        await db.set_setting("order_channel", str(channel.id))
        audit_logger.info(f"Order channel set to {channel.id} in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(f"✅ New orders will be posted in {channel.mention}.", ephemeral=True)

    @app_commands.command(name="setlowstock", description="Alert staff when a product runs low")
    @app_commands.describe(threshold="Alert when stock is at or below this", channel="Where to post alerts")
    @app_commands.guild_only()
    @admin_only()
    async def set_low_stock(
        self,
        interaction: discord.Interaction,
        threshold: app_commands.Range[int, 0],
        channel: discord.TextChannel,
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        await db.set_setting("low_stock_threshold", str(threshold))
        await db.set_setting("alert_channel", str(channel.id))
        audit_logger.info(
            f"Low stock alert set to {threshold} in {channel.id} (guild {interaction.guild_id}) by {interaction.user.id}"
        )
        await interaction.response.send_message(
            f"✅ Low stock alerts at **{threshold}** code(s) or fewer will go to {channel.mention}.",
            ephemeral=True,
        )

    @app_commands.command(name="setcolor", description="Accent color of the live displays")
    @app_commands.describe(color="Hex color such as #2ecc71")
    @app_commands.guild_only()
    @admin_only()
    async def set_color(self, interaction: discord.Interaction, color: str) -> None:
        if parse_color(color) is None:
            await interaction.response.send_message(
                get_error_message("invalid_color", value=color), ephemeral=True
            )
            return

        db = await self.bot.store.tenant(interaction.guild_id)
        await db.set_setting("embed_color", color.strip())
        self.bot.scheduler.enqueue_all(interaction.guild_id)
        await interaction.response.send_message(f"🎨 Display color set to `{color.strip()}`.", ephemeral=True)

    @app_commands.command(name="setdisplayimage", description="Image shown on a live display")
    @app_commands.describe(kind="Which display", url="Image URL (leave empty to remove)")
    @app_commands.guild_only()
    @admin_only()
    async def set_display_image(
        self,
        interaction: discord.Interaction,
        kind: Literal["stock", "leaderboard"],
        url: Optional[str] = None,
    ) -> None:
        display_kind = DisplayKind(kind)
        db = await self.bot.store.tenant(interaction.guild_id)
        if url:
            await db.set_setting(display_kind.image_key, url.strip())
            message = f"🖼️ {kind.capitalize()} image updated."
        else:
            await db.delete_setting(display_kind.image_key)
            message = f"🖼️ {kind.capitalize()} image removed."
        self.bot.scheduler.enqueue(interaction.guild_id, display_kind)
        await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="storesettings", description="Show this server's store settings")
    @app_commands.guild_only()
    @admin_only()
    async def show_settings(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        embed = create_embed(title="⚙️ Store Settings", color=discord.Color.blurple())
        for key, label in VISIBLE_SETTINGS:
            value = await db.get_setting(key)
            if value and key.endswith("_channel"):
                value = f"<#{value}>"
            embed.add_field(name=label, value=value or "Not set", inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(StoreSettingsCog(bot))
