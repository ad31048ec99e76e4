"""Order placement, fulfilment and history commands."""

from __future__ import annotations

from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from codeshop_core.constants import (
    MAX_ORDER_QUANTITY,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PENDING,
)
from codeshop_core.database import CompletedOrder, TenantDatabase
from codeshop_core.errors import InsufficientStockError, OrderStateError
from codeshop_core.live_displays import DisplayKind
from codeshop_core.logger import get_audit_logger, get_logger
from codeshop_core.utils import create_embed, format_price
from codeshop_core.utils.admin_checks import admin_only
from codeshop_core.utils.error_messages import get_error_message

logger = get_logger()
audit_logger = get_audit_logger()

STATUS_EMOJIS = {
    "pending": "⏳",
    "completed": "✅",
    "cancelled": "❌",
}


async def low_stock_alert(db: TenantDatabase, product_code: str) -> Optional[tuple[int, int, int]]:
    """
    Decide whether a low-stock alert is due for ``product_code``.

    Returns:
        ``(alert_channel_id, stock, threshold)`` when the product is at or
        below the guild's ``low_stock_threshold``, otherwise None
    """
    threshold_raw = await db.get_setting("low_stock_threshold")
    channel_raw = await db.get_setting("alert_channel")
    if not threshold_raw or not channel_raw:
        return None
    try:
        threshold = int(threshold_raw)
        channel_id = int(channel_raw)
    except ValueError:
        logger.warning(f"Ignoring malformed low-stock settings for guild {db.guild_id}")
        return None

    stock = await db.get_product_stock(product_code)
    if stock > threshold:
        return None
    return channel_id, stock, threshold


def build_delivery_embed(completed: CompletedOrder, price_text: str) -> discord.Embed:
    codes = "\n".join(f"`{code}`" for code in completed.codes)
    embed = create_embed(
        title="🎉 Your order is ready!",
        description=(
            f"**Order:** #{completed.order_id}\n"
            f"**Product:** {completed.product_name}\n"
            f"**Quantity:** {completed.quantity}\n"
            f"**Total:** {price_text}\n\n"
            f"**Your code(s):**\n{codes}"
        ),
        color=discord.Color.green(),
        timestamp=True,
    )
    embed.set_footer(text="Keep your codes private. Thank you for your purchase!")
    return embed


class OrdersCog(commands.Cog):
    """Buyers place orders; staff complete or cancel them."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    def _price(self, amount: int) -> str:
        currency = self.bot.config.currency
        return format_price(amount, currency.symbol, currency.thousands_separator)

    async def _post_to_setting_channel(
        self, db: TenantDatabase, key: str, **send_kwargs
    ) -> None:
        channel_raw = await db.get_setting(key)
        if not channel_raw:
            return
        try:
            channel = self.bot.get_channel(int(channel_raw))
            if channel is None:
                logger.warning(f"Configured {key} {channel_raw} not found in guild {db.guild_id}")
                return
            await channel.send(**send_kwargs)
        except (ValueError, discord.HTTPException) as e:
            logger.warning(f"Could not post to {key} in guild {db.guild_id}: {e}")

    @app_commands.command(name="buy", description="Order a product")
    @app_commands.describe(product="Product code", quantity="How many codes to buy")
    @app_commands.guild_only()
    async def buy(
        self,
        interaction: discord.Interaction,
        product: str,
        quantity: app_commands.Range[int, 1, MAX_ORDER_QUANTITY] = 1,
    ) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        product_row = await db.get_product(product)
        if product_row is None:
            await interaction.response.send_message(
                get_error_message("invalid_product", code=product.upper()), ephemeral=True
            )
            return

        stock = await db.get_product_stock(product_row["code"])
        if stock == 0:
            await interaction.response.send_message(
                get_error_message("out_of_stock", code=product_row["code"]), ephemeral=True
            )
            return
        if stock < quantity:
            await interaction.response.send_message(
                get_error_message(
                    "insufficient_stock", available_quantity=stock, requested_quantity=quantity
                ),
                ephemeral=True,
            )
            return

        order_id = await db.create_order(
            interaction.user.id, interaction.user.name, product_row["code"], quantity
        )
        total = self._price(product_row["price"] * quantity)
        logger.info(
            f"Order #{order_id} placed in guild {interaction.guild_id} by {interaction.user.id}: "
            f"{quantity}x {product_row['code']}"
        )

        embed = create_embed(
            title="🧾 Order Created",
            description=(
                f"**Order:** #{order_id}\n"
                f"**Product:** {product_row['name']}\n"
                f"**Quantity:** {quantity}\n"
                f"**Total:** {total}\n\n"
                "Complete your payment and a staff member will deliver your codes by DM."
            ),
            color=discord.Color.orange(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

        staff_embed = create_embed(
            title=f"🆕 Order #{order_id}",
            description=(
                f"**Buyer:** {interaction.user.mention}\n"
                f"**Product:** {product_row['name']} (`{product_row['code']}`)\n"
                f"**Quantity:** {quantity}\n"
                f"**Total:** {total}\n\n"
                f"Use `/completeorder {order_id}` once paid."
            ),
            color=discord.Color.orange(),
            timestamp=True,
        )
        await self._post_to_setting_channel(db, "order_channel", embed=staff_embed)

    @app_commands.command(name="completeorder", description="Deliver the codes of a paid order")
    @app_commands.guild_only()
    @admin_only()
    async def complete_order(self, interaction: discord.Interaction, order_id: int) -> None:
        await interaction.response.defer(ephemeral=True)
        db = await self.bot.store.tenant(interaction.guild_id)

        buyer: Optional[discord.abc.User] = None
        order = await db.get_order(order_id)
        if order is not None:
            buyer = interaction.guild.get_member(int(order["user_id"]))

        try:
            completed = await db.complete_order(
                order_id,
                avatar_url=buyer.display_avatar.url if buyer else None,
            )
        except OrderStateError as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return
        except InsufficientStockError as e:
            await interaction.followup.send(
                get_error_message(
                    "insufficient_stock",
                    available_quantity=e.available,
                    requested_quantity=e.requested,
                ),
                ephemeral=True,
            )
            return
        except Exception as e:
            logger.exception(f"Failed to complete order #{order_id}")
            await interaction.followup.send(get_error_message("generic", error=e), ephemeral=True)
            return

        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.STOCK)
        self.bot.scheduler.enqueue(interaction.guild_id, DisplayKind.LEADERBOARD)
        audit_logger.info(
            f"Order #{order_id} completed in guild {interaction.guild_id} by {interaction.user.id} "
            f"({completed.quantity}x {completed.product_code}, {completed.total_price})"
        )

        delivery = build_delivery_embed(completed, self._price(completed.total_price))
        delivered = False
        try:
            if buyer is None:
                buyer = await self.bot.fetch_user(int(completed.user_id))
            await buyer.send(embed=delivery)
            delivered = True
        except (discord.Forbidden, discord.NotFound, discord.HTTPException) as e:
            logger.warning(f"Could not DM codes for order #{order_id} to {completed.user_id}: {e}")

        if delivered:
            await interaction.followup.send(
                f"✅ Order #{order_id} completed and delivered to <@{completed.user_id}>.",
                ephemeral=True,
            )
        else:
            await interaction.followup.send(
                f"⚠️ Order #{order_id} completed but the buyer's DMs are closed. "
                "Deliver these codes manually:",
                embed=delivery,
                ephemeral=True,
            )

        alert = await low_stock_alert(db, completed.product_code)
        if alert:
            channel_id, stock, threshold = alert
            channel = self.bot.get_channel(channel_id)
            if channel is not None:
                try:
                    await channel.send(
                        f"⚠️ Low stock alert: **{completed.product_name}** (`{completed.product_code}`) "
                        f"has {stock} code(s) left (threshold {threshold})."
                    )
                except discord.HTTPException as e:
                    logger.warning(f"Failed to send low stock alert in guild {interaction.guild_id}: {e}")

    @app_commands.command(name="cancelorder", description="Cancel a pending order")
    @app_commands.guild_only()
    @admin_only()
    async def cancel_order(self, interaction: discord.Interaction, order_id: int) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        order = await db.get_order(order_id)
        if order is None:
            await interaction.response.send_message(
                get_error_message("order_not_found", order_id=order_id), ephemeral=True
            )
            return
        if order["status"] != ORDER_STATUS_PENDING:
            await interaction.response.send_message(
                get_error_message("order_not_pending", order_id=order_id, status=order["status"]),
                ephemeral=True,
            )
            return

        await db.update_order_status(order_id, ORDER_STATUS_CANCELLED)
        audit_logger.info(f"Order #{order_id} cancelled in guild {interaction.guild_id} by {interaction.user.id}")
        await interaction.response.send_message(f"❌ Order #{order_id} cancelled.", ephemeral=True)

    @app_commands.command(name="pendingorders", description="List orders waiting for payment")
    @app_commands.guild_only()
    @admin_only()
    async def pending_orders(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        orders = await db.get_pending_orders()
        if not orders:
            await interaction.response.send_message("✅ No pending orders.", ephemeral=True)
            return

        lines = [
            f"**#{order['id']}** • <@{order['user_id']}> • {order['quantity']}x `{order['product']}` "
            f"• {order['created_at']}"
            for order in orders[:25]
        ]
        embed = create_embed(
            title=f"⏳ Pending Orders ({len(orders)})",
            description="\n".join(lines),
            color=discord.Color.orange(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="myorders", description="Show your recent orders")
    @app_commands.guild_only()
    async def my_orders(self, interaction: discord.Interaction) -> None:
        db = await self.bot.store.tenant(interaction.guild_id)
        orders = await db.get_user_orders(interaction.user.id)
        if not orders:
            await interaction.response.send_message("📭 You have no orders yet.", ephemeral=True)
            return

        lines = [
            f"{STATUS_EMOJIS.get(order['status'], '•')} **#{order['id']}** "
            f"{order['quantity']}x `{order['product']}` • {order['status']}"
            for order in orders
        ]
        embed = create_embed(
            title="🧾 Your Orders",
            description="\n".join(lines),
            color=discord.Color.blue(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(OrdersCog(bot))
