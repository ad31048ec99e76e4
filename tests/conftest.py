import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from codeshop_core.config import CurrencySettings, LiveDisplaySettings
from codeshop_core.database import TenantStore
from codeshop_core.errors import TargetGone
from codeshop_core.live_displays import LiveDisplayRegistry
from codeshop_core.scheduler import UpdateScheduler

GUILD_ID = 987654321
OTHER_GUILD_ID = 123123123


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SleepRecorder:
    """Stands in for asyncio.sleep: records the delay and only yields once."""

    def __init__(self, events: list | None = None) -> None:
        self.calls: list[float] = []
        self.events = events if events is not None else []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.events.append(("sleep", seconds))
        await asyncio.sleep(0)


class FakeMessage:
    def __init__(self, message_id: int, channel: "FakeChannel") -> None:
        self.id = message_id
        self.channel = channel


class FakeChannel:
    def __init__(self, channel_id: int) -> None:
        self.id = channel_id
        self.mention = f"<#{channel_id}>"
        self.messages: dict[int, FakeMessage] = {}

    def add_message(self, message_id: int) -> FakeMessage:
        message = FakeMessage(message_id, self)
        self.messages[message_id] = message
        return message


class FakeMessenger:
    """In-memory stand-in for DiscordMessenger."""

    def __init__(self) -> None:
        self.channels: dict[int, FakeChannel] = {}
        self.edits: list[tuple[int, object]] = []
        self.sent: list[tuple[int, object]] = []
        self.edit_error: Exception | None = None
        self.resolve_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.edit_started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self._next_message_id = 50_000

    def add_display(self, channel_id: int, message_id: int) -> FakeMessage:
        channel = self.channels.setdefault(channel_id, FakeChannel(channel_id))
        return channel.add_message(message_id)

    async def resolve_channel(self, channel_id: int) -> FakeChannel:
        if self.resolve_error is not None:
            raise self.resolve_error
        channel = self.channels.get(channel_id)
        if channel is None:
            raise TargetGone("Channel", channel_id)
        return channel

    async def fetch_message(self, channel: FakeChannel, message_id: int) -> FakeMessage:
        if self.fetch_error is not None:
            raise self.fetch_error
        message = channel.messages.get(message_id)
        if message is None:
            raise TargetGone("Message", message_id)
        return message

    async def edit_message(self, message: FakeMessage, artifact) -> None:
        self.edit_started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.edit_error is not None:
            raise self.edit_error
        self.edits.append((message.id, artifact))

    async def send_message(self, channel: FakeChannel, artifact) -> tuple[int, int]:
        self._next_message_id += 1
        channel.add_message(self._next_message_id)
        self.sent.append((channel.id, artifact))
        return channel.id, self._next_message_id


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest_asyncio.fixture
async def store():
    tenant_store = TenantStore(data_dir=None)
    yield tenant_store
    await tenant_store.close()


@pytest_asyncio.fixture
async def db(store: TenantStore):
    return await store.tenant(GUILD_ID)


@pytest.fixture
def registry(store: TenantStore, clock: FakeClock) -> LiveDisplayRegistry:
    return LiveDisplayRegistry(store, clock=clock)


@pytest.fixture
def live_settings() -> LiveDisplaySettings:
    return LiveDisplaySettings()


@pytest_asyncio.fixture
async def scheduler(store, registry, messenger, sleep_recorder, clock, live_settings):
    update_scheduler = UpdateScheduler(
        store,
        registry,
        messenger,
        settings=live_settings,
        currency=CurrencySettings(),
        sleep=sleep_recorder,
        clock=clock,
    )
    yield update_scheduler
    await update_scheduler.stop()


@pytest_asyncio.fixture
async def product_factory(db):
    async def _factory(code: str = "A", name: str = "Alpha", price: int = 1_000, codes: int = 0) -> str:
        await db.add_product(code, name, price)
        if codes:
            await db.add_codes(code, [f"{code}-CODE-{i}" for i in range(codes)])
        return code.upper()

    return _factory
