"""Shared fixtures: an in-memory fake server and plugins talking to it."""

import asyncio
from typing import Any, Optional

import pytest

from mcplink.config import ClientConfig, GlobalSettings
from mcplink.domain.errors import ToolError
from mcplink.domain.events import Event, EventBus
from mcplink.domain.protocols import PluginMetadata
from mcplink.domain.types import ConnectionRequest, Prompt, Resource, Tool, TransportType
from mcplink.infrastructure.mcp.registry import PluginRegistry

SSE_URI = "http://localhost:3006/sse"
OTHER_URI = "http://localhost:4006/sse"
WS_URI = "ws://localhost:3006/message"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHandle:
    def __init__(self, uri: str, server: "FakeServer"):
        self.uri = uri
        self.closed = False
        self.initialized = False
        self._server = server

    @property
    def is_closed(self) -> bool:
        return self.closed

    async def initialize(self) -> dict[str, Any]:
        gate = self._server.init_gates.get(self.uri)
        if gate is not None:
            await gate.wait()
        if self._server.initialize_errors:
            raise self._server.initialize_errors.pop(0)
        self.initialized = True
        return {"serverInfo": {"name": "fake"}}


class FakeServer:
    """State shared between a test and the plugin instances a registry builds."""

    def __init__(self) -> None:
        self.connect_calls = 0
        self.connect_errors: list[BaseException] = []
        self.initialize_errors: list[BaseException] = []
        self.connect_gates: dict[str, asyncio.Event] = {}
        self.init_gates: dict[str, asyncio.Event] = {}
        self.handles: list[FakeHandle] = []
        self.max_open = 0
        self.tool_results: dict[str, Any] = {}
        self.tool_delays: dict[str, float] = {}
        self.call_count = 0
        self.list_calls = 0
        self.list_error: Optional[BaseException] = None
        self.healthy = True
        self.disconnect_calls = 0
        self.lost_callback = None
        self.primitives: list[Any] = [
            Tool(name="echo", description="Echo the arguments", input_schema={"type": "object"}),
            Tool(name="add", description="Add two numbers", input_schema={"type": "object"}),
            Resource(name="readme", uri="file:///readme.md", mime_type="text/markdown"),
            Prompt(name="summarize", arguments=({"name": "text", "required": True},)),
        ]

    @property
    def open_handles(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.closed]


def make_plugin(server: FakeServer, transport_type: TransportType = TransportType.SSE) -> type:
    """Build a plugin class bound to ``server`` for the given transport."""

    class FakePlugin:
        metadata = PluginMetadata(
            name=f"Fake {transport_type.value}", version="1.0.0", transport_type=transport_type
        )

        def __init__(self, config: Optional[dict[str, Any]] = None):
            self.config = dict(config or {})

        def is_supported(self, uri: str) -> bool:
            return uri.startswith(("http://", "https://", "ws://", "wss://"))

        async def connect(self, uri: str) -> FakeHandle:
            server.connect_calls += 1
            gate = server.connect_gates.get(uri)
            if gate is not None:
                await gate.wait()
            if server.connect_errors:
                raise server.connect_errors.pop(0)
            handle = FakeHandle(uri, server)
            server.handles.append(handle)
            server.max_open = max(server.max_open, len(server.open_handles))
            return handle

        async def call_tool(self, handle: FakeHandle, name: str, arguments: dict[str, Any]) -> Any:
            server.call_count += 1
            if name in server.tool_delays:
                await asyncio.sleep(server.tool_delays[name])
            result = server.tool_results.get(name)
            if isinstance(result, BaseException):
                raise result
            if result is None and name not in {p.name for p in server.primitives if isinstance(p, Tool)}:
                raise ToolError(f"Tool '{name}' not found on server")
            return result if result is not None else {"tool": name, "arguments": arguments}

        async def get_primitives(self, handle: FakeHandle) -> list[Any]:
            server.list_calls += 1
            if server.list_error is not None:
                raise server.list_error
            return list(server.primitives)

        async def is_healthy(self, handle: FakeHandle) -> bool:
            return server.healthy and not handle.closed

        async def disconnect(self, handle: FakeHandle) -> None:
            server.disconnect_calls += 1
            handle.closed = True

        def set_connection_lost_callback(self, callback) -> None:
            server.lost_callback = callback

    return FakePlugin


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: EventBus):
        self.events: list[Event] = []
        bus.subscribe(Event, self.events.append)

    def of_type(self, event_type: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, event_type)]

    def names(self) -> list[str]:
        return [type(e).__name__ for e in self.events]


def make_config(**overrides: Any) -> ClientConfig:
    settings = {
        "operation_timeout": 1.0,
        "health_check_interval": 0,
        "recovery_interval": 0,
        "cleanup_timeout": 0.5,
    }
    settings.update(overrides)
    return ClientConfig(global_settings=GlobalSettings(**settings))


async def wait_until(predicate, timeout: float = 1.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it holds or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def registry(server: FakeServer, event_bus: EventBus) -> PluginRegistry:
    registry = PluginRegistry(event_bus)
    registry.register(make_plugin(server, TransportType.SSE))
    registry.register(make_plugin(server, TransportType.WEBSOCKET))
    return registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sse_request() -> ConnectionRequest:
    return ConnectionRequest(uri=SSE_URI, transport_type=TransportType.SSE)


@pytest.fixture
def other_request() -> ConnectionRequest:
    return ConnectionRequest(uri=OTHER_URI, transport_type=TransportType.SSE)
