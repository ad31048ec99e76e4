"""Permission checking utilities for store staff."""

from __future__ import annotations

from typing import Optional

import discord

from codeshop_core.config import Config


def is_admin(
    user: discord.abc.User,
    guild: Optional[discord.Guild],
    config: Config,
) -> bool:
    """
    Check if a user may run store management commands in a guild.

    Members with the Manage Server permission always qualify; otherwise the
    member needs one of the configured ``admin_role_ids``.

    Args:
        user: Discord user to check
        guild: Guild context (None if in DMs)
        config: Bot configuration

    Returns:
        True if user is a store admin in ``guild``
    """
    if guild is None:
        return False

    member = guild.get_member(user.id)
    if not member:
        return False

    permissions = getattr(member, "guild_permissions", None)
    if permissions is not None and permissions.manage_guild:
        return True

    admin_role_ids = set(getattr(config, "admin_role_ids", []) or [])
    if not admin_role_ids:
        return False
    return any(role.id in admin_role_ids for role in getattr(member, "roles", []))
