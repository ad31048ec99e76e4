"""
Logging setup for the Codeshop bot.

Console logging for every process, plus optional Discord channel handlers so
staff see errors and audit events without shell access.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

LOGGER_NAME = "codeshop_core"
LOG_FORMAT = "[%(asctime)s] %(levelname)s:%(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DISCORD_MESSAGE_LIMIT = 2000

# Global logger instance
logger: Optional[logging.Logger] = None


class DiscordHandler(logging.Handler):
    """Logging handler that forwards records to a Discord text channel."""

    def __init__(self, bot=None, channel_id: Optional[int] = None):
        super().__init__()
        self.bot = bot
        self.channel_id = channel_id

    def emit(self, record: logging.LogRecord) -> None:
        if not (self.bot and self.channel_id):
            return

        channel = self.bot.get_channel(self.channel_id)
        if not channel:
            return

        try:
            message = self._render(record)
        except Exception:
            message = f"**{record.levelname}**: {record.getMessage()}"
        if len(message) > DISCORD_MESSAGE_LIMIT:
            message = message[: DISCORD_MESSAGE_LIMIT - 3] + "..."

        self._schedule_send(channel, message)

    def _render(self, record: logging.LogRecord) -> str:
        base = f"**{record.levelname}**: {record.getMessage()}"
        if not record.exc_info:
            return base
        trace = self.format(record)
        if len(trace) > 1850:
            trace = trace[:1850] + "... (truncated)"
        return f"{base}\n```{trace}```"

    def _schedule_send(self, channel, message: str) -> None:
        try:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = getattr(self.bot, "loop", None)
            if loop is None or not loop.is_running():
                return
            asyncio.run_coroutine_threadsafe(self._send_to_discord(channel, message), loop)
        except Exception as e:
            # stderr only, logging here would recurse
            print(f"DiscordHandler: Failed to schedule message: {e}", file=sys.stderr)

    async def _send_to_discord(self, channel, message: str) -> None:
        try:
            await channel.send(message)
        except Exception as e:
            print(f"DiscordHandler: Failed to send message: {e}", file=sys.stderr)


def setup_logger(
    level: int = logging.INFO,
    enable_discord: bool = False,
    bot=None,
    audit_channel_id: Optional[int] = None,
    error_channel_id: Optional[int] = None,
) -> logging.Logger:
    """
    Configure the shared Codeshop logger.

    Args:
        level: Logging level (default: INFO)
        enable_discord: Whether to forward records to Discord channels
        bot: Bot instance used to resolve the channels
        audit_channel_id: Channel receiving INFO+ records from ``*.audit`` loggers
        error_channel_id: Channel receiving ERROR+ records

    Returns:
        Configured logger instance
    """
    global logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if enable_discord and bot:
        if audit_channel_id:
            audit_handler = DiscordHandler(bot, audit_channel_id)
            audit_handler.setLevel(logging.INFO)
            audit_handler.addFilter(lambda record: "audit" in record.name.lower())
            logger.addHandler(audit_handler)

        if error_channel_id:
            error_handler = DiscordHandler(bot, error_channel_id)
            error_handler.setLevel(logging.ERROR)
            logger.addHandler(error_handler)

    logger.propagate = False
    return logger


def get_logger() -> logging.Logger:
    """Return the shared logger, creating a console-only one on first use."""
    global logger
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.INFO)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
            logger.propagate = False
    return logger


def get_audit_logger() -> logging.Logger:
    """Child logger whose records reach the audit channel handler."""
    return get_logger().getChild("audit")


logger = get_logger()
