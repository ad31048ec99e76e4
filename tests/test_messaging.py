from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from codeshop_core.errors import TargetGone
from codeshop_core.messaging import DiscordMessenger
from codeshop_core.renderer import Artifact

ARTIFACT = Artifact(
    title="📦 Live Stock",
    body="No products available yet. Check back soon!",
    color=0x2ECC71,
    footer="Updated 0 seconds ago",
    timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
)


def _not_found(text: str = "Unknown Message") -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), text)


def _text_channel() -> MagicMock:
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = 10
    return channel


@pytest.mark.asyncio
async def test_resolve_channel_from_cache():
    channel = _text_channel()
    client = MagicMock()
    client.get_channel.return_value = channel
    client.fetch_channel = AsyncMock()

    messenger = DiscordMessenger(client)

    assert await messenger.resolve_channel(10) is channel
    client.fetch_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_channel_falls_back_to_fetch():
    channel = _text_channel()
    client = MagicMock()
    client.get_channel.return_value = None
    client.fetch_channel = AsyncMock(return_value=channel)

    messenger = DiscordMessenger(client)

    assert await messenger.resolve_channel(10) is channel
    client.fetch_channel.assert_awaited_once_with(10)


@pytest.mark.asyncio
async def test_deleted_channel_is_target_gone():
    client = MagicMock()
    client.get_channel.return_value = None
    client.fetch_channel = AsyncMock(side_effect=_not_found("Unknown Channel"))

    messenger = DiscordMessenger(client)

    with pytest.raises(TargetGone) as exc_info:
        await messenger.resolve_channel(10)
    assert exc_info.value.what == "Channel"
    assert exc_info.value.target_id == 10


@pytest.mark.asyncio
async def test_non_messageable_channel_is_target_gone():
    client = MagicMock()
    client.get_channel.return_value = MagicMock(spec=discord.CategoryChannel)

    messenger = DiscordMessenger(client)

    with pytest.raises(TargetGone):
        await messenger.resolve_channel(10)


@pytest.mark.asyncio
async def test_forbidden_channel_fetch_propagates():
    client = MagicMock()
    client.get_channel.return_value = None
    client.fetch_channel = AsyncMock(
        side_effect=discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Access")
    )

    messenger = DiscordMessenger(client)

    with pytest.raises(discord.Forbidden):
        await messenger.resolve_channel(10)


@pytest.mark.asyncio
async def test_deleted_message_is_target_gone():
    channel = _text_channel()
    channel.fetch_message = AsyncMock(side_effect=_not_found())

    messenger = DiscordMessenger(MagicMock())

    with pytest.raises(TargetGone) as exc_info:
        await messenger.fetch_message(channel, 100)
    assert exc_info.value.what == "Message"


@pytest.mark.asyncio
async def test_edit_message_sends_embed():
    message = MagicMock()
    message.id = 100
    message.edit = AsyncMock()

    await DiscordMessenger(MagicMock()).edit_message(message, ARTIFACT)

    embed = message.edit.await_args.kwargs["embed"]
    assert embed.title == ARTIFACT.title
    assert embed.footer.text == ARTIFACT.footer


@pytest.mark.asyncio
async def test_edit_deleted_message_is_target_gone():
    message = MagicMock()
    message.id = 100
    message.edit = AsyncMock(side_effect=_not_found())

    with pytest.raises(TargetGone):
        await DiscordMessenger(MagicMock()).edit_message(message, ARTIFACT)


@pytest.mark.asyncio
async def test_edit_server_error_propagates():
    message = MagicMock()
    message.id = 100
    message.edit = AsyncMock(
        side_effect=discord.HTTPException(MagicMock(status=500, reason="Server Error"), "boom")
    )

    with pytest.raises(discord.HTTPException):
        await DiscordMessenger(MagicMock()).edit_message(message, ARTIFACT)


@pytest.mark.asyncio
async def test_send_message_returns_ids():
    sent = MagicMock()
    sent.id = 555
    sent.channel.id = 10
    channel = _text_channel()
    channel.send = AsyncMock(return_value=sent)

    assert await DiscordMessenger(MagicMock()).send_message(channel, ARTIFACT) == (10, 555)
    assert channel.send.await_args.kwargs["embed"].description == ARTIFACT.body
