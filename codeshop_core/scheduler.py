"""
Background refresh queue for live displays.

Requests are coalesced per ``(guild_id, kind)`` and drained by a single
asyncio task that edits one message at a time, sleeping a fixed delay after
each edit to stay well below Discord's rate limits.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

from .config import CurrencySettings, LiveDisplaySettings
from .errors import TargetGone
from .live_displays import DisplayKind, LiveDisplayRegistry
from .logger import get_logger
from .renderer import Artifact, collect_state, render
from .utils.timestamps import utcnow

if TYPE_CHECKING:
    from .database import TenantStore
    from .messaging import DiscordMessenger

logger = get_logger()


@dataclass(frozen=True)
class RefreshRequest:
    tenant_id: int
    kind: DisplayKind


class UpdateScheduler:
    """Coalescing, single-flight refresher for live display messages."""

    def __init__(
        self,
        store: TenantStore,
        registry: LiveDisplayRegistry,
        messenger: DiscordMessenger,
        *,
        settings: Optional[LiveDisplaySettings] = None,
        currency: Optional[CurrencySettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.messenger = messenger
        self.settings = settings if settings is not None else LiveDisplaySettings()
        self.currency = currency if currency is not None else CurrencySettings()
        self._sleep = sleep
        self._clock = clock

        self._pending: dict[tuple[int, DisplayKind], RefreshRequest] = {}
        self._draining = False
        self._accepting = True
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def pending(self) -> list[RefreshRequest]:
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, tenant_ids: Iterable[int]) -> int:
        """Restore persisted displays for ``tenant_ids`` and accept requests."""
        self._accepting = True
        return await self.registry.restore(tenant_ids)

    async def stop(self) -> None:
        """Stop accepting requests and let an in-flight drain run to completion."""
        self._accepting = False
        await self.wait_idle()
        logger.info("Live display scheduler stopped")

    async def wait_idle(self) -> None:
        task = self._drain_task
        if task is not None and not task.done():
            await task

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, tenant_id: int, kind: DisplayKind) -> None:
        """Request a refresh of one display without waiting for it."""
        if not self._accepting:
            logger.debug(f"Scheduler stopped, dropping {kind.value} refresh for guild {tenant_id}")
            return

        self._pending[(tenant_id, kind)] = RefreshRequest(tenant_id, kind)
        if self._draining:
            return

        self._draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    def enqueue_all(self, tenant_id: int) -> None:
        for kind in DisplayKind:
            self.enqueue(tenant_id, kind)

    async def _drain(self) -> None:
        processed = 0
        try:
            # Re-read on every pass so requests added mid-drain are picked up.
            while self._pending:
                key = next(iter(self._pending))
                request = self._pending.pop(key)
                await self._refresh(request)
                processed += 1
                await self._sleep(self.settings.edit_delay_seconds)
        finally:
            self._draining = False
            logger.debug(f"Refresh queue drained ({processed} processed)")

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def build_artifact(
        self,
        tenant_id: int,
        kind: DisplayKind,
        *,
        last_refreshed: Optional[datetime] = None,
    ) -> Artifact:
        """Render the current state of a guild's ``kind`` display."""
        now = self._clock()
        db = await self.store.tenant(tenant_id)
        state = await collect_state(db, kind, leaderboard_limit=self.settings.leaderboard_limit)
        return render(
            kind,
            state,
            last_refreshed=last_refreshed or now,
            now=now,
            currency=self.currency,
            settings=self.settings,
        )

    async def _refresh(self, request: RefreshRequest) -> None:
        tenant_id, kind = request.tenant_id, request.kind
        handle = self.registry.lookup(tenant_id, kind)
        if handle is None:
            logger.debug(f"No {kind.value} display registered for guild {tenant_id}")
            return

        try:
            channel = await self.messenger.resolve_channel(handle.channel_id)
            message = await self.messenger.fetch_message(channel, handle.message_id)
            refreshed_at = self.registry.touch(tenant_id, kind)
            artifact = await self.build_artifact(tenant_id, kind, last_refreshed=refreshed_at)
            await self.messenger.edit_message(message, artifact)
        except TargetGone as e:
            logger.warning(
                f"{kind.value.capitalize()} display for guild {tenant_id} is gone ({e})"
            )
            await self.registry.unregister(tenant_id, kind, expected=handle)
        except Exception as e:
            logger.error(
                f"Failed to refresh {kind.value} display for guild {tenant_id}: {e}",
                exc_info=True,
            )
        else:
            logger.debug(f"Refreshed {kind.value} display for guild {tenant_id}")

    # ------------------------------------------------------------------
    # Periodic sweep
    # ------------------------------------------------------------------

    async def sweep(self) -> None:
        """Queue every registered stock board, pause, then every leaderboard."""
        for tenant_id in sorted(self.registry.list_tenants(DisplayKind.STOCK)):
            self.enqueue(tenant_id, DisplayKind.STOCK)

        await self._sleep(self.settings.sweep_stagger_seconds)

        for tenant_id in sorted(self.registry.list_tenants(DisplayKind.LEADERBOARD)):
            self.enqueue(tenant_id, DisplayKind.LEADERBOARD)
