"""Embed factory utilities."""

from datetime import datetime
from typing import Optional, Union

import discord

from ..constants import EMBED_FOOTER_MAX_LENGTH


def create_embed(
    title: Optional[str] = None,
    description: Optional[str] = None,
    color: Union[discord.Color, int] = discord.Color.blue(),
    footer: Optional[str] = None,
    timestamp: Union[bool, datetime] = False,
    image_url: Optional[str] = None,
) -> discord.Embed:
    """
    Create a standardized Discord embed.

    Args:
        title: Embed title
        description: Embed description
        color: Embed color, as a discord.Color or a 0xRRGGBB integer
        footer: Footer text, cut to Discord's footer limit
        timestamp: True for the current time, or an explicit datetime
        image_url: Large image shown under the description

    Returns:
        Configured Discord Embed
    """
    if isinstance(color, int):
        color = discord.Color(color)
    embed = discord.Embed(title=title, description=description, color=color)

    if footer:
        embed.set_footer(text=footer[:EMBED_FOOTER_MAX_LENGTH])

    if isinstance(timestamp, datetime):
        embed.timestamp = timestamp
    elif timestamp:
        embed.timestamp = discord.utils.utcnow()

    if image_url:
        embed.set_image(url=image_url)

    return embed
