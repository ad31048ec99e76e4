"""Registry of live display messages (stock board, leaderboard) per guild."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .logger import get_logger
from .utils.timestamps import utcnow

if TYPE_CHECKING:
    from .database import TenantStore

logger = get_logger()


class DisplayKind(str, enum.Enum):
    STOCK = "stock"
    LEADERBOARD = "leaderboard"

    @property
    def channel_key(self) -> str:
        return f"{self.value}_channel"

    @property
    def message_key(self) -> str:
        return f"{self.value}_message"

    @property
    def image_key(self) -> str:
        return f"{self.value}_image"


@dataclass(frozen=True)
class LiveDisplayHandle:
    """Where a published live display currently lives."""

    tenant_id: int
    kind: DisplayKind
    channel_id: int
    message_id: int


class LiveDisplayRegistry:
    """
    In-memory map of ``(guild_id, kind)`` to the published display message.

    Every change is mirrored to the guild's ``settings`` table so the map can
    be rebuilt after a restart. The registry also tracks when each display
    was last refreshed, for the "Updated N ago" footer.
    """

    def __init__(self, store: TenantStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self._clock = clock
        self._handles: dict[tuple[int, DisplayKind], LiveDisplayHandle] = {}
        self._last_refreshed: dict[tuple[int, DisplayKind], datetime] = {}

    async def register(
        self, tenant_id: int, kind: DisplayKind, channel_id: int, message_id: int
    ) -> LiveDisplayHandle:
        """Store (or replace) the display handle and reset its refresh time."""
        handle = LiveDisplayHandle(tenant_id, kind, int(channel_id), int(message_id))
        key = (tenant_id, kind)
        self._handles[key] = handle
        self._last_refreshed[key] = self._clock()
        await self._persist(handle)

        logger.info(
            f"Registered {kind.value} display for guild {tenant_id} "
            f"(channel {handle.channel_id}, message {handle.message_id})"
        )
        return handle

    async def _persist(self, handle: LiveDisplayHandle) -> None:
        try:
            db = await self.store.tenant(handle.tenant_id)
            await db.set_setting(handle.kind.channel_key, str(handle.channel_id))
            await db.set_setting(handle.kind.message_key, str(handle.message_id))
        except Exception as e:
            logger.error(
                f"Failed to persist {handle.kind.value} display for guild {handle.tenant_id}: {e}",
                exc_info=True,
            )

    def lookup(self, tenant_id: int, kind: DisplayKind) -> Optional[LiveDisplayHandle]:
        return self._handles.get((tenant_id, kind))

    async def unregister(
        self,
        tenant_id: int,
        kind: DisplayKind,
        *,
        expected: Optional[LiveDisplayHandle] = None,
    ) -> bool:
        """
        Forget a display. Calling it for an unknown display is a no-op.

        With ``expected`` set, the display is only forgotten while it still
        points at that handle. A refresh that failed against an old message
        must not drop a display that was re-published in the meantime.

        Returns:
            True if a handle was removed
        """
        key = (tenant_id, kind)
        current = self._handles.get(key)
        if expected is not None and current != expected:
            logger.debug(
                f"Keeping {kind.value} display for guild {tenant_id}: "
                f"message {expected.message_id} was already replaced"
            )
            return False

        removed = self._handles.pop(key, None)
        self._last_refreshed.pop(key, None)

        try:
            db = await self.store.tenant(tenant_id)
            await db.delete_setting(kind.channel_key)
            await db.delete_setting(kind.message_key)
        except Exception as e:
            logger.error(
                f"Failed to clear persisted {kind.value} display for guild {tenant_id}: {e}",
                exc_info=True,
            )

        # A register that ran while the settings were being cleared wins.
        replacement = self._handles.get(key)
        if replacement is not None:
            await self._persist(replacement)

        if removed is not None:
            logger.info(f"Unregistered {kind.value} display for guild {tenant_id}")
        return removed is not None

    def list_tenants(self, kind: DisplayKind) -> set[int]:
        return {tenant_id for (tenant_id, handle_kind) in self._handles if handle_kind is kind}

    def last_refreshed(self, tenant_id: int, kind: DisplayKind) -> Optional[datetime]:
        return self._last_refreshed.get((tenant_id, kind))

    def touch(self, tenant_id: int, kind: DisplayKind) -> datetime:
        """Mark the display as refreshed now and return that instant."""
        now = self._clock()
        self._last_refreshed[(tenant_id, kind)] = now
        return now

    async def restore(self, tenant_ids: Iterable[int]) -> int:
        """
        Rebuild handles from the persisted settings of ``tenant_ids``.

        Best effort: a guild whose settings are missing, half-written or
        unreadable is treated as having no display configured.

        Returns:
            Number of handles restored
        """
        restored = 0
        for tenant_id in tenant_ids:
            for kind in DisplayKind:
                try:
                    db = await self.store.tenant(tenant_id)
                    channel_raw = await db.get_setting(kind.channel_key)
                    message_raw = await db.get_setting(kind.message_key)
                except Exception as e:
                    logger.warning(
                        f"Could not read {kind.value} display settings for guild {tenant_id}: {e}"
                    )
                    continue

                if not channel_raw or not message_raw:
                    continue
                try:
                    channel_id = int(channel_raw)
                    message_id = int(message_raw)
                except ValueError:
                    logger.warning(
                        f"Ignoring malformed {kind.value} display settings for guild {tenant_id}: "
                        f"channel={channel_raw!r} message={message_raw!r}"
                    )
                    continue

                key = (tenant_id, kind)
                self._handles[key] = LiveDisplayHandle(tenant_id, kind, channel_id, message_id)
                self._last_refreshed[key] = self._clock()
                restored += 1

        if restored:
            logger.info(f"Restored {restored} live display(s) from storage")
        return restored
