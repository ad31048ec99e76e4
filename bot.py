"""
Codeshop - Discord bot selling digital codes with live stock boards.

This is the main entrypoint for the bot.
"""

import asyncio
import logging
import os
import re
import sys
from dataclasses import replace
from pathlib import Path

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

from codeshop_core import (
    DiscordMessenger,
    LiveDisplayRegistry,
    TenantStore,
    UpdateScheduler,
    load_config,
)
from codeshop_core.logger import setup_logger
from codeshop_core.utils.error_messages import get_error_message

load_dotenv()

logger = setup_logger(level=logging.INFO)


def _validate_token_format(token: str) -> bool:
    """
    Validates that the token matches the expected Discord token format.

    Expected format: three base64-like segments separated by dots.
    Segments should be alphanumeric with - or _.
    """
    if not token or not isinstance(token, str):
        return False

    parts = token.split('.')
    if len(parts) != 3:
        return False

    token_part_pattern = r'^[A-Za-z0-9_-]+$'
    if not all(re.match(token_part_pattern, part) for part in parts):
        return False

    if len(parts[0]) < 10 or len(parts[1]) < 3 or len(parts[2]) < 10:
        return False

    return True


class CodeshopBot(commands.Bot):
    """Bot carrying the tenant store and the live display scheduler."""

    def __init__(self, *args, **kwargs):
        self.config = kwargs.pop("config")
        self.config_path = kwargs.pop("config_path", "config.json")
        super().__init__(*args, **kwargs)

        self.store = TenantStore(self.config.data_dir)
        self.displays = LiveDisplayRegistry(self.store)
        self.messenger = DiscordMessenger(self)
        self.scheduler = UpdateScheduler(
            self.store,
            self.displays,
            self.messenger,
            settings=self.config.live_displays,
            currency=self.config.currency,
        )

    async def reload_config(self) -> None:
        """Reload configuration from file, keeping the environment token."""
        try:
            new_config = load_config(self.config_path)
            if self.config.token:
                new_config = replace(new_config, token=self.config.token)
            self.config = new_config
            self.scheduler.settings = new_config.live_displays
            self.scheduler.currency = new_config.currency
            logger.info("Bot configuration reloaded successfully")
        except Exception as e:
            logger.error(f"Failed to reload config: {e}", exc_info=True)
            raise

    async def setup_hook(self):
        channels = self.config.logging_channels
        if channels.errors or channels.audit:
            setup_logger(
                level=logging.INFO,
                enable_discord=True,
                bot=self,
                audit_channel_id=channels.audit,
                error_channel_id=channels.errors,
            )
            logger.info("Discord channel logging enabled.")

        self.tree.on_error = self.on_app_command_error
        await self._load_cogs()
        await self.tree.sync()
        logger.info("Global command tree synced")

    async def _load_cogs(self):
        cogs_dir = Path(__file__).parent / "cogs"
        if not cogs_dir.exists():
            logger.warning("No cogs directory found. Skipping cog loading.")
            return

        for cog_file in sorted(cogs_dir.glob("*.py")):
            if cog_file.stem.startswith("_"):
                continue

            extension = f"cogs.{cog_file.stem}"
            try:
                await self.load_extension(extension)
                logger.info(f"Loaded extension: {extension}")
            except Exception as e:
                logger.error(f"Failed to load extension {extension}: {e}", exc_info=True)

    async def on_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        """Reply to failed checks; log everything else."""
        if isinstance(error, app_commands.NoPrivateMessage):
            message = get_error_message("guild_only")
        elif isinstance(error, app_commands.CheckFailure):
            message = get_error_message("permission_denied")
        else:
            command = interaction.command.qualified_name if interaction.command else "unknown"
            logger.error(f"Unhandled error in /{command}: {error}", exc_info=error)
            message = get_error_message("generic", error="please try again later")

        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    async def on_ready(self):
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"Codeshop is ready in {len(self.guilds)} guild(s)")

    async def close(self):
        await self.scheduler.stop()
        await self.store.close()
        logger.info("Tenant databases closed.")
        await super().close()


async def main():
    config_path = os.environ.get("CONFIG_PATH", "config.json")
    token = os.environ.get("DISCORD_TOKEN")

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if token:
        if not _validate_token_format(token):
            logger.error("Invalid DISCORD_TOKEN format in environment variables.")
            sys.exit(1)

        config = replace(config, token=token)
        logger.info("Using token from environment variable")

    if not config.token:
        logger.error("No bot token configured. Set DISCORD_TOKEN or token in config.json.")
        sys.exit(1)

    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True
    intents.guilds = True

    bot = CodeshopBot(
        command_prefix=config.bot_prefix,
        intents=intents,
        config=config,
        config_path=config_path,
    )

    async with bot:
        await bot.start(config.token)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot shut down by user.")


if __name__ == "__main__":
    run()
