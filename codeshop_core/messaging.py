"""Discord access used by the live display scheduler."""

from __future__ import annotations

import discord

from .errors import TargetGone
from .renderer import Artifact, artifact_to_embed


class DiscordMessenger:
    """
    Thin adapter over a discord.py client.

    ``discord.NotFound`` from any call is raised as ``TargetGone``; every other
    error propagates untouched so callers can treat it as transient.
    """

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def resolve_channel(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(channel_id)
            except discord.NotFound as exc:
                raise TargetGone("Channel", channel_id) from exc

        if channel is None or not isinstance(channel, discord.abc.Messageable):
            raise TargetGone("Channel", channel_id)
        return channel

    async def fetch_message(self, channel: discord.abc.Messageable, message_id: int) -> discord.Message:
        try:
            return await channel.fetch_message(message_id)
        except discord.NotFound as exc:
            raise TargetGone("Message", message_id) from exc

    async def edit_message(self, message: discord.Message, artifact: Artifact) -> None:
        try:
            await message.edit(embed=artifact_to_embed(artifact))
        except discord.NotFound as exc:
            raise TargetGone("Message", message.id) from exc

    async def send_message(self, channel: discord.abc.Messageable, artifact: Artifact) -> tuple[int, int]:
        """Publish a new display message; returns ``(channel_id, message_id)``."""
        message = await channel.send(embed=artifact_to_embed(artifact))
        return message.channel.id, message.id
