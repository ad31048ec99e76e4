"""Sales reports, leaderboard lookups and customer testimonials."""

from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from codeshop_core.live_displays import DisplayKind
from codeshop_core.logger import get_logger
from codeshop_core.renderer import artifact_to_embed
from codeshop_core.utils import create_embed, format_price
from codeshop_core.utils.admin_checks import admin_only

logger = get_logger()

STAR = "⭐"


class SalesCog(commands.Cog):
    """Read-only sales views plus testimonials."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    def _price(self, amount: int) -> str:
        currency = self.bot.config.currency
        return format_price(amount, currency.symbol, currency.thousands_separator)

    @app_commands.command(name="sales", description="Revenue for today, this week, this month and all time")
    @app_commands.guild_only()
    @admin_only()
    async def sales(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        history = await db.get_sales_history()
        embed = create_embed(title="📈 Sales", color=discord.Color.green(), timestamp=True)
        embed.add_field(name="Today", value=self._price(history.daily))
        embed.add_field(name="Last 7 days", value=self._price(history.weekly))
        embed.add_field(name="This month", value=self._price(history.monthly))
        embed.add_field(name="All time", value=self._price(history.all_time), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="purchases", description="Most recent purchases")
    @app_commands.guild_only()
    @admin_only()
    async def purchases(
        self, interaction: discord.Interaction, limit: app_commands.Range[int, 1, 25] = 10
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        rows = await db.get_purchases(limit)
        if not rows:
            await interaction.response.send_message("📭 No purchases yet.", ephemeral=True)
            return

        lines = [
            f"<@{row['user_id']}> • {row['quantity']}x {row['product']} • "
            f"{self._price(row['total_price'])} • {row['purchased_at']}"
            for row in rows
        ]
        embed = create_embed(
            title="🧾 Recent Purchases",
            description="\n".join(lines),
            color=discord.Color.blue(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="leaderboard", description="Show the top buyers")
    @app_commands.guild_only()
    async def leaderboard(self, interaction: discord.Interaction) -> None:
        artifact = await self.bot.scheduler.build_artifact(interaction.guild_id, DisplayKind.LEADERBOARD)
        await interaction.response.send_message(embed=artifact_to_embed(artifact), ephemeral=True)

    @app_commands.command(name="testimoni", description="Leave a testimonial for the store")
    @app_commands.describe(message="What did you think?", rating="Stars from 1 to 5")
    @app_commands.guild_only()
    async def add_testimonial(
        self,
        interaction: discord.Interaction,
        message: app_commands.Range[str, 1, 1000],
        rating: app_commands.Range[int, 1, 5] = 5,
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        testimonial_id = await db.add_testimonial(
            interaction.user.id,
            interaction.user.name,
            interaction.user.display_avatar.url,
            message,
            rating,
        )
        logger.info(f"Testimonial #{testimonial_id} added in guild {interaction.guild_id} by {interaction.user.id}")

        embed = create_embed(
            title=STAR * rating,
            description=message,
            color=discord.Color.gold(),
            timestamp=True,
        )
        embed.set_author(name=interaction.user.display_name, icon_url=interaction.user.display_avatar.url)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="testimonials", description="Read recent testimonials")
    @app_commands.guild_only()
    async def list_testimonials(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        rows = await db.get_testimonials(10)
        if not rows:
            await interaction.response.send_message("📭 No testimonials yet.", ephemeral=True)
            return

        embed = create_embed(title="💬 Testimonials", color=discord.Color.gold())
        for row in rows:
            embed.add_field(
                name=f"{STAR * row['rating']} {row['username']}",
                value=row["message"][:1024],
                inline=False,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(SalesCog(bot))
