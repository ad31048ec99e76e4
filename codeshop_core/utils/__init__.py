"""Shared utilities for Codeshop."""

from .currency import format_price
from .embeds import create_embed
from .timestamps import discord_timestamp, format_age, utcnow

__all__ = [
    "format_price",
    "create_embed",
    "discord_timestamp",
    "format_age",
    "utcnow",
]
