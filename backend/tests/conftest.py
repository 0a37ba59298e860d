"""Shared fixtures for the bifrost test suite.

Everything runs in-process: an ``InMemoryHost`` stands in for the
tabletop host and a scripted ``FakeWebSocket`` stands in for Heimdall.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio

from bifrost.adapters.memory import InMemoryHost, InMemorySettingsStore
from bifrost.api.ws.router import HandlerContext
from bifrost.config import Settings
from bifrost.domains.sync.snapshot import SnapshotService
from bifrost.domains.tracking.registry import MarkerRegistry
from bifrost.logging_config import StructuredFormatter
from bifrost.models.host import Actor, Scene
from bifrost.schemas.messages import to_wire
from bifrost.services.events import Event, EventBus
from bifrost.services.tasks import TaskScheduler

HOST_VERSION = "12.331"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


class FakeWebSocket:
    """Client socket double: frames fed by the test, sends recorded."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == message_type]

    def feed(self, frame: dict[str, Any] | str) -> None:
        """Queue an inbound frame from the server."""
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server closing the connection."""
        self.close_code = code
        self.close_reason = reason
        self.closed = True
        self._inbox.put_nowait(None)

    def end_stream(self) -> None:
        """Stop yielding frames while the socket itself stays open."""
        self._inbox.put_nowait(None)

    async def send(self, data: str) -> None:
        if self.closed or self.fail_sends:
            raise ConnectionError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.drop(code, reason)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        frame = await self._inbox.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Connector double handing out ``FakeWebSocket`` instances."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self.fail = False
        self.hang = False

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def socket(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise ConnectionRefusedError(f"refused: {url}")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


class RecordingScheduler(TaskScheduler):
    """Runs one-shot timers immediately but records the requested delays."""

    def __init__(self) -> None:
        super().__init__()
        self.delays: list[tuple[str, float]] = []

    def after(self, name, delay, callback):
        self.delays.append((name, delay))
        return super().after(name, 0, callback)


class SendRecorder:
    """Stand-in for the transport's send callback."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list[dict[str, Any]] = []

    async def __call__(self, message) -> bool:
        self.sent.append(to_wire(message))
        return self.result


class RecordingEventBus(EventBus):
    """Event bus that also remembers what was emitted."""

    def __init__(self) -> None:
        super().__init__()
        self.history: list[Event] = []

    async def emit(self, event_type: str, data: dict[str, Any] | None = None) -> list[Any]:
        self.history.append(Event(type=event_type, data=data or {}))
        return await super().emit(event_type, data)

    def recent(self, event_type: str | None = None) -> list[Event]:
        if event_type is None:
            return self.history[:]
        return [e for e in self.history if e.type == event_type]


class StructuredCapture(logging.Handler):
    """Formats records as they are emitted, so context variables are kept."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.entries: list[dict[str, Any]] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.entries.append(json.loads(self.format(record)))

    def messages(self, message: str) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["message"] == message]


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values: dict[str, Any] = {
        "auto_connect": False,
        "auto_heartbeat": False,
        "scene_change_sync_delay_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def seed_host(host: InMemoryHost) -> InMemoryHost:
    """Active scene plus a player and an NPC actor."""
    await host.add_actor(
        Actor(
            id="actor-bob",
            name="Bob",
            type="character",
            img="bob.png",
            prototype_token={"img": "bob-token.png", "width": 1, "height": 1},
            system={"attributes": {"hp": {"value": 12}}, "details": {"level": 3}},
            ownership={"default": 0, "player-1": 3},
            item_count=4,
        )
    )
    await host.add_actor(Actor(id="actor-guard", name="Guard", type="npc"))
    await host.activate_scene(Scene(id="scene-1", name="Goblin Cave", width=2000, height=1500))
    return host


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventBus:
    return RecordingEventBus()


@pytest_asyncio.fixture
async def host(events: EventBus) -> InMemoryHost:
    return await seed_host(InMemoryHost(events, version=HOST_VERSION))


@pytest.fixture
def registry(host: InMemoryHost, clock: FakeClock) -> MarkerRegistry:
    return MarkerRegistry(host, clock=clock)


@pytest.fixture
def snapshots(host: InMemoryHost, registry: MarkerRegistry) -> SnapshotService:
    return SnapshotService(host, registry)


@pytest.fixture
def sender() -> SendRecorder:
    return SendRecorder()


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def handler_context(
    host: InMemoryHost,
    registry: MarkerRegistry,
    snapshots: SnapshotService,
    settings_store: InMemorySettingsStore,
    sender: SendRecorder,
) -> HandlerContext:
    return HandlerContext(
        host=host,
        registry=registry,
        snapshots=snapshots,
        settings_store=settings_store,
        send=sender,
    )


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def structured_logs():
    capture = StructuredCapture()
    root = logging.getLogger()
    previous_level = root.level
    root.addHandler(capture)
    root.setLevel(logging.DEBUG)
    yield capture
    root.removeHandler(capture)
    root.setLevel(previous_level)
