"""Tests for the plugin registry."""

import pytest

from conftest import FakeServer, make_plugin
from mcplink.domain.errors import ConfigurationError
from mcplink.domain.events import EventBus, PluginRegistered, PluginsLoaded
from mcplink.domain.types import TransportType
from mcplink.infrastructure.mcp import registry as registry_module
from mcplink.infrastructure.mcp.plugins import SSEPlugin, StreamableHttpPlugin, WebSocketPlugin
from mcplink.infrastructure.mcp.registry import PluginRegistry


class _EntryPoint:
    def __init__(self, name, target):
        self.name = name
        self._target = target

    def load(self):
        if isinstance(self._target, Exception):
            raise self._target
        return self._target


@pytest.fixture
def events():
    bus = EventBus()
    received = []
    bus.subscribe(PluginRegistered, received.append)
    bus.subscribe(PluginsLoaded, received.append)
    return bus, received


class TestRegistration:
    """Tests for register/unregister and plugin construction."""

    def test_register_and_list(self, events):
        bus, received = events
        registry = PluginRegistry(bus)
        registry.register(make_plugin(FakeServer(), TransportType.SSE))

        assert registry.is_available(TransportType.SSE)
        assert not registry.is_available(TransportType.WEBSOCKET)
        assert registry.list_available() == [TransportType.SSE]
        assert isinstance(received[0], PluginRegistered)
        assert received[0].transport_type == TransportType.SSE

    def test_plugins_are_memoized_per_config(self):
        registry = PluginRegistry()
        registry.register(make_plugin(FakeServer(), TransportType.SSE))

        first = registry.get_initialized_plugin(TransportType.SSE, {"a": 1, "b": 2})
        same = registry.get_initialized_plugin(TransportType.SSE, {"b": 2, "a": 1})
        other = registry.get_initialized_plugin(TransportType.SSE, {"a": 3})

        assert first is same
        assert first is not other
        assert registry.list_initialized() == [TransportType.SSE]
        assert registry.stats()["initialized_plugins"] == 2

    def test_missing_plugin(self):
        registry = PluginRegistry()
        with pytest.raises(ConfigurationError, match="not found"):
            registry.get_initialized_plugin(TransportType.WEBSOCKET)

    def test_invalid_plugin_config_is_rejected(self):
        registry = PluginRegistry()
        registry.register(SSEPlugin)
        with pytest.raises(ConfigurationError):
            registry.get_initialized_plugin(TransportType.SSE, {"connection_timeout": -1})

    def test_replacing_drops_instances(self):
        registry = PluginRegistry()
        registry.register(make_plugin(FakeServer(), TransportType.SSE))
        old = registry.get_initialized_plugin(TransportType.SSE)

        registry.register(make_plugin(FakeServer(), TransportType.SSE))

        assert registry.get_initialized_plugin(TransportType.SSE) is not old

    def test_unregister(self):
        registry = PluginRegistry()
        registry.register(make_plugin(FakeServer(), TransportType.SSE))
        registry.get_initialized_plugin(TransportType.SSE)

        assert registry.unregister(TransportType.SSE) is True
        assert registry.unregister(TransportType.SSE) is False
        assert registry.list_initialized() == []

    def test_clear(self):
        registry = PluginRegistry()
        registry.register(make_plugin(FakeServer(), TransportType.SSE))
        registry.clear()
        assert registry.stats()["total_plugins"] == 0


class TestLoadDefaultPlugins:
    """Tests for entry point discovery and the manual fallback."""

    def test_discovered_plugins(self, monkeypatch, events):
        bus, received = events
        monkeypatch.setattr(
            registry_module,
            "entry_points",
            lambda group: [_EntryPoint("sse", SSEPlugin), _EntryPoint("websocket", WebSocketPlugin)],
        )
        registry = PluginRegistry(bus)

        assert registry.load_default_plugins() == 2
        loaded = [e for e in received if isinstance(e, PluginsLoaded)][0]
        assert loaded.count == 2
        assert loaded.fallback_used is False

    def test_fallback_when_nothing_is_discovered(self, monkeypatch, events):
        bus, received = events
        monkeypatch.setattr(registry_module, "entry_points", lambda group: [])
        registry = PluginRegistry(bus)

        assert registry.load_default_plugins() == 3
        assert set(registry.list_available()) == set(TransportType)
        assert [e for e in received if isinstance(e, PluginsLoaded)][0].fallback_used is True

    def test_fallback_when_discovery_fails(self, monkeypatch):
        def broken(group):
            raise RuntimeError("metadata unavailable")

        monkeypatch.setattr(registry_module, "entry_points", broken)
        registry = PluginRegistry()

        assert registry.load_default_plugins() == 3

    def test_broken_entry_point_is_skipped(self, monkeypatch):
        monkeypatch.setattr(
            registry_module,
            "entry_points",
            lambda group: [_EntryPoint("bad", ImportError("no module")), _EntryPoint("http", StreamableHttpPlugin)],
        )
        registry = PluginRegistry()

        assert registry.load_default_plugins() == 1
        assert registry.list_available() == [TransportType.STREAMABLE_HTTP]

    def test_fallback_failure_raises(self, monkeypatch):
        monkeypatch.setattr(registry_module, "entry_points", lambda group: [])
        monkeypatch.setattr(registry_module, "BUNDLED_PLUGINS", (object,))
        registry = PluginRegistry()

        with pytest.raises(RuntimeError, match="Failed to load default plugins"):
            registry.load_default_plugins()
