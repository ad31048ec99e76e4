"""Product catalog and code inventory commands."""

from __future__ import annotations

import re

import discord
from discord import app_commands
from discord.ext import commands

from codeshop_core.errors import CodeExistsError, ProductExistsError
from codeshop_core.live_displays import DisplayKind
from codeshop_core.logger import get_audit_logger, get_logger
from codeshop_core.utils import create_embed, format_price
from codeshop_core.utils.admin_checks import admin_only
from codeshop_core.utils.error_messages import get_error_message

logger = get_logger()
audit_logger = get_audit_logger()

CODE_SPLIT_PATTERN = re.compile(r"[\s,]+")
VIEW_CODES_LIMIT = 50


def split_codes(raw: str) -> list[str]:
    """Split a pasted blob of codes on whitespace and commas, dropping blanks and repeats."""
    seen: set[str] = set()
    codes: list[str] = []
    for code in CODE_SPLIT_PATTERN.split(raw):
        if code and code not in seen:
            seen.add(code)
            codes.append(code)
    return codes


class CatalogCog(commands.Cog):
    """Manage products and the codes sold for them."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    def _price(self, amount: int) -> str:
        currency = self.bot.config.currency
        return format_price(amount, currency.symbol, currency.thousands_separator)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @app_commands.command(name="addproduct", description="Add a product to the catalog")
    @app_commands.describe(code="Short product code, e.g. NF1M", name="Display name", price="Unit price")
    @app_commands.guild_only()
    @admin_only()
    async def add_product(
        self,
        interaction: discord.Interaction,
        code: str,
        name: str,
        price: app_commands.Range[int, 1],
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        try:
            await db.add_product(code, name, price)
        except ProductExistsError as e:
            await interaction.response.send_message(
                get_error_message("product_exists", code=e.code), ephemeral=True
            )
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        audit_logger.info(f"Product {code.upper()} added in guild {interaction.guild_id} by {interaction.user.id}")
        embed = create_embed(
            title="✅ Product Added",
            description=f"**{name}** (`{code.upper()}`)\nPrice: **{self._price(price)}**",
            color=discord.Color.green(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="editproduct", description="Change a product's name and price")
    @app_commands.guild_only()
    @admin_only()
    async def edit_product(
        self,
        interaction: discord.Interaction,
        code: str,
        name: str,
        price: app_commands.Range[int, 1],
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        if not await db.update_product(code, name, price):
            await interaction.response.send_message(
                get_error_message("invalid_product", code=code.upper()), ephemeral=True
            )
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        audit_logger.info(f"Product {code.upper()} edited in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(
            f"✅ `{code.upper()}` is now **{name}** at **{self._price(price)}**.", ephemeral=True
        )

    @app_commands.command(name="deleteproduct", description="Remove a product from the catalog")
    @app_commands.guild_only()
    @admin_only()
    async def delete_product(self, interaction: discord.Interaction, code: str) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        if not await db.delete_product(code):
            await interaction.response.send_message(
                get_error_message("invalid_product", code=code.upper()), ephemeral=True
            )
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        audit_logger.info(f"Product {code.upper()} deleted in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(f"🗑️ Product `{code.upper()}` deleted.", ephemeral=True)

    @app_commands.command(name="products", description="List the products for sale")
    @app_commands.guild_only()
    async def list_products(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        products = await db.get_products()
        if not products:
            await interaction.response.send_message(
                self.bot.config.live_displays.stock_empty_text, ephemeral=True
            )
            return

        lines = []
        for product in products:
            stock = await db.get_product_stock(product["code"])
            lines.append(
                f"`{product['code']}` **{product['name']}** • {self._price(product['price'])} • stock {stock}"
            )
        embed = create_embed(
            title="🛒 Products",
            description="\n".join(lines),
            color=discord.Color.blue(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    @app_commands.command(name="addcode", description="Add one code to a product")
    @app_commands.guild_only()
    @admin_only()
    async def add_code(self, interaction: discord.Interaction, product: str, code: str) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        if await db.get_product(product) is None:
            await interaction.response.send_message(
                get_error_message("invalid_product", code=product.upper()), ephemeral=True
            )
            return

        try:
            await db.add_code(product, code)
        except CodeExistsError:
            await interaction.response.send_message(get_error_message("code_exists"), ephemeral=True)
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        stock = await db.get_product_stock(product)
        audit_logger.info(f"1 code added to {product.upper()} in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(
            f"✅ Code added to `{product.upper()}`. Stock: **{stock}**", ephemeral=True
        )

    @app_commands.command(name="addcodes", description="Add many codes to a product at once")
    @app_commands.describe(codes="Codes separated by spaces, commas or new lines")
    @app_commands.guild_only()
    @admin_only()
    async def add_codes(self, interaction: discord.Interaction, product: str, codes: str) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        if await db.get_product(product) is None:
            await interaction.response.send_message(
                get_error_message("invalid_product", code=product.upper()), ephemeral=True
            )
            return

        submitted = split_codes(codes)
        await interaction.response.defer(ephemeral=True)
        try:
            added = await db.add_codes(product, submitted)
        except Exception as e:
            logger.exception("Failed to add codes")
            await interaction.followup.send(get_error_message("generic", error=e), ephemeral=True)
            return

        if added:
            self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        stock = await db.get_product_stock(product)
        skipped = len(submitted) - added
        audit_logger.info(
            f"{added} code(s) added to {product.upper()} in guild {interaction.guild_id} by {interaction.user.id}"
        )
        message = f"✅ Added **{added}** code(s) to `{product.upper()}`. Stock: **{stock}**"
        if skipped:
            message += f"\n⚠️ Skipped {skipped} duplicate code(s)."
        await interaction.followup.send(message, ephemeral=True)

    @app_commands.command(name="deletecode", description="Remove a code from a product")
    @app_commands.guild_only()
    @admin_only()
    async def delete_code(self, interaction: discord.Interaction, product: str, code: str) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        if not await db.delete_code(product, code):
            await interaction.response.send_message(
                f"❌ Code not found for `{product.upper()}`.", ephemeral=True
            )
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        audit_logger.info(f"Code deleted from {product.upper()} in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(f"🗑️ Code removed from `{product.upper()}`.", ephemeral=True)

    @app_commands.command(name="viewcodes", description="Show the unused codes of a product")
    @app_commands.guild_only()
    @admin_only()
    async def view_codes(self, interaction: discord.Interaction, product: str) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        rows = await db.view_codes(product)
        if not rows:
            await interaction.response.send_message(
                f"📭 No unused codes for `{product.upper()}`.", ephemeral=True
            )
            return

        shown = rows[:VIEW_CODES_LIMIT]
        body = "\n".join(f"`{row['code']}`" for row in shown)
        if len(rows) > len(shown):
            body += f"\n... and {len(rows) - len(shown)} more"
        embed = create_embed(
            title=f"🔑 {product.upper()} codes ({len(rows)})",
            description=body,
            color=discord.Color.dark_grey(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="stock", description="Show available codes per product")
    @app_commands.guild_only()
    async def stock(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        rows = await db.get_stock()
        if not rows:
            await interaction.response.send_message("📭 No codes in stock.", ephemeral=True)
            return

        body = "\n".join(
            f"`{row['product']}` • {row['available']} available / {row['total']} total" for row in rows
        )
        embed = create_embed(title="📦 Stock", description=body, color=discord.Color.green())
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(CatalogCog(bot))
