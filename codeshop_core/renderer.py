"""Rendering of live displays into embed-ready artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import discord

from .config import CurrencySettings, LiveDisplaySettings
from .constants import (
    DEFAULT_LEADERBOARD_COLOR,
    DEFAULT_STOCK_COLOR,
    EMBED_DESCRIPTION_MAX_LENGTH,
    LEADERBOARD_DISPLAY_TITLE,
    STOCK_DISPLAY_TITLE,
)
from .live_displays import DisplayKind
from .logger import get_logger
from .utils.currency import format_price
from .utils.embeds import create_embed
from .utils.timestamps import format_age

if TYPE_CHECKING:
    from .database import TenantDatabase

logger = get_logger()

RANK_MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


@dataclass(frozen=True)
class Artifact:
    title: str
    body: str
    color: int
    footer: str
    timestamp: datetime
    image_url: Optional[str] = None


@dataclass(frozen=True)
class ProductLine:
    code: str
    name: str
    price: int
    stock: int


@dataclass(frozen=True)
class LeaderboardLine:
    user_id: str
    username: str
    total_purchases: int
    total_spent: int


@dataclass(frozen=True)
class TenantState:
    """Everything a display needs to know about one guild."""

    products: list[ProductLine] = field(default_factory=list)
    leaderboard: list[LeaderboardLine] = field(default_factory=list)
    color: Optional[int] = None
    image_url: Optional[str] = None


def parse_color(value: Optional[str]) -> Optional[int]:
    """Parse ``#rrggbb`` / ``rrggbb`` / ``0xrrggbb``; None when unparseable."""
    if not value:
        return None
    text = value.strip().lower()
    for prefix in ("#", "0x"):
        if text.startswith(prefix):
            text = text[len(prefix):]
    if len(text) != 6:
        return None
    try:
        return int(text, 16)
    except ValueError:
        return None


def rank_label(rank: int) -> str:
    return RANK_MEDALS.get(rank, f"#{rank}")


def _truncate(body: str) -> str:
    if len(body) <= EMBED_DESCRIPTION_MAX_LENGTH:
        return body
    return body[: EMBED_DESCRIPTION_MAX_LENGTH - 3] + "..."


def render_stock_body(
    products: list[ProductLine],
    *,
    currency: CurrencySettings,
    empty_text: str,
) -> str:
    if not products:
        return empty_text

    groups = []
    for product in products:
        status = "✅" if product.stock > 0 else "❌"
        price = format_price(product.price, currency.symbol, currency.thousands_separator)
        groups.append(
            f"**{product.name}** (`{product.code}`)\n"
            f"{status} Stock: **{product.stock}**\n"
            f"💰 Price: **{price}**"
        )
    return "\n\n".join(groups)


def render_leaderboard_body(
    entries: list[LeaderboardLine],
    *,
    currency: CurrencySettings,
    empty_text: str,
) -> str:
    if not entries:
        return empty_text

    lines = []
    for rank, entry in enumerate(entries, start=1):
        spent = format_price(entry.total_spent, currency.symbol, currency.thousands_separator)
        purchases = "purchase" if entry.total_purchases == 1 else "purchases"
        lines.append(
            f"{rank_label(rank)} **{entry.username}** • {spent} "
            f"({entry.total_purchases} {purchases})"
        )
    return "\n".join(lines)


def render(
    kind: DisplayKind,
    state: TenantState,
    *,
    last_refreshed: datetime,
    now: datetime,
    currency: Optional[CurrencySettings] = None,
    settings: Optional[LiveDisplaySettings] = None,
) -> Artifact:
    """Build the artifact for ``kind``; the footer shows how long ago it was refreshed."""
    if currency is None:
        currency = CurrencySettings()
    if settings is None:
        settings = LiveDisplaySettings()

    if kind is DisplayKind.STOCK:
        title = STOCK_DISPLAY_TITLE
        default_color = DEFAULT_STOCK_COLOR
        body = render_stock_body(
            state.products, currency=currency, empty_text=settings.stock_empty_text
        )
    else:
        title = LEADERBOARD_DISPLAY_TITLE
        default_color = DEFAULT_LEADERBOARD_COLOR
        body = render_leaderboard_body(
            state.leaderboard, currency=currency, empty_text=settings.leaderboard_empty_text
        )

    return Artifact(
        title=title,
        body=_truncate(body),
        color=state.color if state.color is not None else default_color,
        footer=f"Updated {format_age(now - last_refreshed)}",
        timestamp=now,
        image_url=state.image_url,
    )


async def collect_state(
    db: TenantDatabase,
    kind: DisplayKind,
    *,
    leaderboard_limit: int = 10,
) -> TenantState:
    """Load the tenant data the ``kind`` display renders."""
    color_raw = await db.get_setting("embed_color")
    color = parse_color(color_raw)
    if color_raw and color is None:
        logger.warning(f"Ignoring invalid embed_color {color_raw!r} for guild {db.guild_id}")
    image_url = await db.get_setting(kind.image_key) or None

    if kind is DisplayKind.STOCK:
        products = [
            ProductLine(
                code=row["code"],
                name=row["name"],
                price=row["price"],
                stock=await db.get_product_stock(row["code"]),
            )
            for row in await db.get_products()
        ]
        return TenantState(products=products, color=color, image_url=image_url)

    entries = [
        LeaderboardLine(
            user_id=row["user_id"],
            username=row["username"],
            total_purchases=row["total_purchases"],
            total_spent=row["total_spent"],
        )
        for row in await db.get_leaderboard(leaderboard_limit)
    ]
    return TenantState(leaderboard=entries, color=color, image_url=image_url)


def artifact_to_embed(artifact: Artifact) -> discord.Embed:
    return create_embed(
        title=artifact.title,
        description=artifact.body,
        color=artifact.color,
        footer=artifact.footer,
        timestamp=artifact.timestamp,
        image_url=artifact.image_url,
    )
