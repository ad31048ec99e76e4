"""Tests for the live display refresh queue."""

import asyncio
from unittest.mock import MagicMock

import discord
import pytest

from codeshop_core.config import CurrencySettings, LiveDisplaySettings
from codeshop_core.errors import TargetGone
from codeshop_core.live_displays import DisplayKind
from codeshop_core.scheduler import UpdateScheduler

from conftest import GUILD_ID, OTHER_GUILD_ID, SleepRecorder

STOCK = DisplayKind.STOCK
LEADERBOARD = DisplayKind.LEADERBOARD


async def _publish(registry, messenger, tenant_id, kind, channel_id, message_id):
    messenger.add_display(channel_id, message_id)
    return await registry.register(tenant_id, kind, channel_id, message_id)


@pytest.mark.asyncio
async def test_back_to_back_requests_coalesce(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)

    scheduler.enqueue(GUILD_ID, STOCK)
    scheduler.enqueue(GUILD_ID, STOCK)
    scheduler.enqueue(GUILD_ID, STOCK)
    assert len(scheduler.pending) == 1

    await scheduler.wait_idle()

    assert [message_id for message_id, _ in messenger.edits] == [100]
    assert not scheduler.is_draining


@pytest.mark.asyncio
async def test_burst_during_drain_is_serviced_once(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    await _publish(registry, messenger, OTHER_GUILD_ID, STOCK, 20, 200)
    messenger.gate = asyncio.Event()

    scheduler.enqueue(GUILD_ID, STOCK)
    await messenger.edit_started.wait()
    assert scheduler.is_draining

    for _ in range(5):
        scheduler.enqueue(GUILD_ID, STOCK)
    scheduler.enqueue(OTHER_GUILD_ID, STOCK)
    assert len(scheduler.pending) == 2

    messenger.gate.set()
    await scheduler.wait_idle()

    assert [message_id for message_id, _ in messenger.edits] == [100, 100, 200]


@pytest.mark.asyncio
async def test_single_drain_task_at_a_time(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.gate = asyncio.Event()

    scheduler.enqueue(GUILD_ID, STOCK)
    first_task = scheduler._drain_task
    await messenger.edit_started.wait()

    scheduler.enqueue(GUILD_ID, LEADERBOARD)
    assert scheduler._drain_task is first_task

    messenger.gate.set()
    await scheduler.wait_idle()


@pytest.mark.asyncio
async def test_edit_delay_separates_consecutive_edits(scheduler, registry, messenger, sleep_recorder):
    for offset in range(3):
        await _publish(registry, messenger, GUILD_ID + offset, STOCK, 10 + offset, 100 + offset)
        scheduler.enqueue(GUILD_ID + offset, STOCK)

    await scheduler.wait_idle()

    assert len(messenger.edits) == 3
    assert sleep_recorder.calls == [2.0, 2.0, 2.0]
    # N edits take at least (N - 1) delays.
    assert sum(sleep_recorder.calls) >= (len(messenger.edits) - 1) * 2.0


@pytest.mark.asyncio
async def test_missing_message_unregisters_display(scheduler, registry, messenger, db):
    messenger.add_display(10, 999)
    await registry.register(GUILD_ID, STOCK, 10, 100)

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) is None
    assert await db.get_setting("stock_channel") is None
    assert await db.get_setting("stock_message") is None
    assert messenger.edits == []

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()
    assert messenger.edits == []
    assert registry.lookup(GUILD_ID, STOCK) is None


@pytest.mark.asyncio
async def test_missing_channel_unregisters_display(scheduler, registry, messenger):
    await registry.register(GUILD_ID, LEADERBOARD, 404, 100)

    scheduler.enqueue(GUILD_ID, LEADERBOARD)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, LEADERBOARD) is None


@pytest.mark.asyncio
async def test_transient_error_keeps_display(scheduler, registry, messenger, db):
    handle = await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.edit_error = RuntimeError("connection reset")

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) == handle
    assert await db.get_setting("stock_message") == "100"

    messenger.edit_error = None
    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()
    assert [message_id for message_id, _ in messenger.edits] == [100]


@pytest.mark.asyncio
async def test_forbidden_is_not_treated_as_gone(scheduler, registry, messenger):
    handle = await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.edit_error = discord.Forbidden(
        MagicMock(status=403, reason="Forbidden"), "Missing Permissions"
    )

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) == handle


@pytest.mark.asyncio
async def test_failure_does_not_stop_the_queue(scheduler, registry, messenger):
    await registry.register(GUILD_ID, STOCK, 404, 100)
    await _publish(registry, messenger, OTHER_GUILD_ID, STOCK, 20, 200)

    scheduler.enqueue(GUILD_ID, STOCK)
    scheduler.enqueue(OTHER_GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert [message_id for message_id, _ in messenger.edits] == [200]


@pytest.mark.asyncio
async def test_unregistered_display_is_a_noop(scheduler, messenger, sleep_recorder):
    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert messenger.edits == []
    assert not scheduler.is_draining


@pytest.mark.asyncio
async def test_edit_renders_current_stock(scheduler, registry, messenger, product_factory):
    await product_factory("A", "Alpha", 1_000, codes=2)
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    _, artifact = messenger.edits[0]
    assert "Stock: **2**" in artifact.body
    assert "Rp 1.000" in artifact.body
    assert artifact.footer == "Updated 0 seconds ago"


@pytest.mark.asyncio
async def test_refresh_touches_last_refreshed(scheduler, registry, messenger, clock):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    registered_at = registry.last_refreshed(GUILD_ID, STOCK)

    clock.advance(90)
    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.last_refreshed(GUILD_ID, STOCK) > registered_at


@pytest.mark.asyncio
async def test_sweep_queues_stock_then_leaderboard_after_stagger(store, registry, messenger, clock):
    events = []
    recorder = SleepRecorder(events)
    scheduler = UpdateScheduler(
        store,
        registry,
        messenger,
        settings=LiveDisplaySettings(),
        currency=CurrencySettings(),
        sleep=recorder,
        clock=clock,
    )
    original_enqueue = scheduler.enqueue

    def recording_enqueue(tenant_id, kind):
        events.append(("enqueue", tenant_id, kind))
        original_enqueue(tenant_id, kind)

    scheduler.enqueue = recording_enqueue

    await _publish(registry, messenger, OTHER_GUILD_ID, STOCK, 20, 200)
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    await _publish(registry, messenger, GUILD_ID, LEADERBOARD, 10, 101)

    await scheduler.sweep()
    await scheduler.wait_idle()

    enqueues = [event for event in events if event[0] == "enqueue"]
    assert enqueues == [
        ("enqueue", OTHER_GUILD_ID, STOCK),
        ("enqueue", GUILD_ID, STOCK),
        ("enqueue", GUILD_ID, LEADERBOARD),
    ]
    stagger_index = events.index(("sleep", 5.0))
    assert events.index(("enqueue", GUILD_ID, STOCK)) < stagger_index
    assert stagger_index < events.index(("enqueue", GUILD_ID, LEADERBOARD))
    assert sorted(message_id for message_id, _ in messenger.edits) == [100, 101, 200]


@pytest.mark.asyncio
async def test_stop_drops_new_requests(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)

    await scheduler.stop()
    scheduler.enqueue(GUILD_ID, STOCK)

    assert scheduler.pending == []
    assert not scheduler.is_draining
    assert messenger.edits == []


@pytest.mark.asyncio
async def test_stop_lets_in_flight_drain_finish(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    await _publish(registry, messenger, GUILD_ID, LEADERBOARD, 10, 101)
    messenger.gate = asyncio.Event()

    scheduler.enqueue(GUILD_ID, STOCK)
    scheduler.enqueue(GUILD_ID, LEADERBOARD)
    await messenger.edit_started.wait()

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0)
    messenger.gate.set()
    await stopping

    assert [message_id for message_id, _ in messenger.edits] == [100, 101]


@pytest.mark.asyncio
async def test_start_restores_persisted_displays(scheduler, registry, db):
    await db.set_setting("stock_channel", "10")
    await db.set_setting("stock_message", "100")

    restored = await scheduler.start([GUILD_ID])

    assert restored == 1
    assert registry.lookup(GUILD_ID, STOCK).message_id == 100


@pytest.mark.asyncio
async def test_build_artifact_without_display(scheduler):
    artifact = await scheduler.build_artifact(GUILD_ID, LEADERBOARD)

    assert artifact.body == LiveDisplaySettings().leaderboard_empty_text
    assert artifact.footer == "Updated 0 seconds ago"


@pytest.mark.asyncio
async def test_stale_failure_keeps_republished_display(scheduler, registry, messenger, db):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.gate = asyncio.Event()
    messenger.edit_error = TargetGone("Message", 100)

    scheduler.enqueue(GUILD_ID, STOCK)
    await messenger.edit_started.wait()

    replacement = await _publish(registry, messenger, GUILD_ID, STOCK, 10, 200)
    messenger.gate.set()
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) == replacement
    assert await db.get_setting("stock_channel") == "10"
    assert await db.get_setting("stock_message") == "200"


@pytest.mark.asyncio
async def test_transient_fetch_error_keeps_display(scheduler, registry, messenger, db):
    handle = await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.fetch_error = discord.HTTPException(
        MagicMock(status=500, reason="Internal Server Error"), "boom"
    )

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) == handle
    assert await db.get_setting("stock_message") == "100"
    assert messenger.edits == []


@pytest.mark.asyncio
async def test_transient_resolve_error_keeps_display(scheduler, registry, messenger, db):
    handle = await _publish(registry, messenger, GUILD_ID, LEADERBOARD, 10, 100)
    messenger.resolve_error = discord.HTTPException(
        MagicMock(status=503, reason="Service Unavailable"), "gateway hiccup"
    )

    scheduler.enqueue(GUILD_ID, LEADERBOARD)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, LEADERBOARD) == handle
    assert await db.get_setting("leaderboard_channel") == "10"

    messenger.resolve_error = None
    scheduler.enqueue(GUILD_ID, LEADERBOARD)
    await scheduler.wait_idle()
    assert [message_id for message_id, _ in messenger.edits] == [100]


@pytest.mark.asyncio
async def test_gone_from_fetch_unregisters_display(scheduler, registry, messenger, db):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.fetch_error = TargetGone("Message", 100)

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) is None
    assert await db.get_setting("stock_message") is None


@pytest.mark.asyncio
async def test_gone_from_resolve_unregisters_display(scheduler, registry, messenger):
    await _publish(registry, messenger, GUILD_ID, STOCK, 10, 100)
    messenger.resolve_error = TargetGone("Channel", 10)

    scheduler.enqueue(GUILD_ID, STOCK)
    await scheduler.wait_idle()

    assert registry.lookup(GUILD_ID, STOCK) is None


@pytest.mark.asyncio
async def test_scheduler_defaults_settings_per_instance(store, registry, messenger):
    first = UpdateScheduler(store, registry, messenger)
    second = UpdateScheduler(store, registry, messenger)

    assert first.settings == LiveDisplaySettings()
    assert first.currency == CurrencySettings()
    assert first.settings is not second.settings
