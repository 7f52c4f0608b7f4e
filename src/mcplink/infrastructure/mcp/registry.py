"""Registry of transport plugins."""

from __future__ import annotations

import json
from importlib.metadata import entry_points
from typing import Any, Iterable, Mapping, Optional

from mcplink.domain.errors import ConfigurationError
from mcplink.domain.events import EventBus, PluginRegistered, PluginsLoaded
from mcplink.domain.protocols import TransportPlugin
from mcplink.domain.types import TransportType
from mcplink.logger import get_logger

from .plugins import BUNDLED_PLUGINS

logger = get_logger("plugins.registry")

ENTRY_POINT_GROUP = "mcplink.transports"

PluginClass = type[TransportPlugin]


def _config_shape(config: Optional[Mapping[str, Any]]) -> str:
    return json.dumps(dict(config or {}), sort_keys=True, default=str)


class PluginRegistry:
    """Holds the available plugin classes and the configured instances built from them.

    Plugins are constructed lazily on first use and memoized per transport
    type and configuration, so two requests with the same settings share a
    plugin instance while a settings change yields a fresh one.
    """

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self._event_bus = event_bus
        self._plugins: dict[TransportType, PluginClass] = {}
        self._instances: dict[tuple[TransportType, str], TransportPlugin] = {}

    def register(self, plugin_cls: PluginClass) -> None:
        """Register a plugin class, replacing any plugin for the same transport."""
        metadata = plugin_cls.metadata
        transport_type = metadata.transport_type

        if transport_type in self._plugins:
            logger.warning(f"Plugin for transport '{transport_type.value}' already registered, replacing")
            self._drop_instances(transport_type)

        self._plugins[transport_type] = plugin_cls
        logger.info(f"Registered plugin: {metadata.name} v{metadata.version} ({transport_type.value})")

        if self._event_bus is not None:
            self._event_bus.publish(PluginRegistered(transport_type=transport_type, name=metadata.name))

    def unregister(self, transport_type: TransportType) -> bool:
        if transport_type not in self._plugins:
            return False
        del self._plugins[transport_type]
        self._drop_instances(transport_type)
        logger.info(f"Unregistered plugin for transport: {transport_type.value}")
        return True

    def get_initialized_plugin(
        self, transport_type: TransportType, config: Optional[Mapping[str, Any]] = None
    ) -> TransportPlugin:
        """
        Return a configured plugin for a transport, constructing it on first use.

        Args:
            transport_type: Transport to get a plugin for
            config: Plugin settings; instances are memoized per settings

        Raises:
            ConfigurationError: If no plugin is registered for the transport or
                the settings are rejected by the plugin
        """
        plugin_cls = self._plugins.get(transport_type)
        if plugin_cls is None:
            raise ConfigurationError(f"Plugin for transport '{transport_type.value}' not found")

        key = (transport_type, _config_shape(config))
        plugin = self._instances.get(key)
        if plugin is None:
            plugin = plugin_cls(dict(config or {}))
            self._instances[key] = plugin
            logger.info(f"Initialized plugin: {transport_type.value}")
        return plugin

    def is_available(self, transport_type: TransportType) -> bool:
        return transport_type in self._plugins

    def list_available(self) -> list[TransportType]:
        return list(self._plugins)

    def list_initialized(self) -> list[TransportType]:
        return sorted({transport_type for transport_type, _ in self._instances}, key=lambda t: t.value)

    def stats(self) -> dict[str, Any]:
        return {
            "total_plugins": len(self._plugins),
            "initialized_plugins": len(self._instances),
            "available_types": [t.value for t in self.list_available()],
            "initialized_types": [t.value for t in self.list_initialized()],
        }

    def load_default_plugins(self) -> int:
        """
        Register the bundled plugins.

        Plugins are discovered through the ``mcplink.transports`` entry
        point group. If discovery fails or finds nothing (for instance when
        the package metadata is not installed), the statically known
        bundled classes are registered directly.

        Returns:
            Number of registered plugins

        Raises:
            RuntimeError: If the manual fallback fails too
        """
        logger.info("Loading default plugins...")
        fallback_used = False
        try:
            discovered = self._discover()
            if not discovered:
                raise LookupError(f"no plugins found in entry point group '{ENTRY_POINT_GROUP}'")
            for plugin_cls in discovered:
                self.register(plugin_cls)
        except Exception as e:
            logger.warning(f"Plugin discovery failed: {e}. Attempting manual plugin registration")
            fallback_used = True
            try:
                self._register_all(BUNDLED_PLUGINS)
            except Exception as fallback_error:
                logger.error(f"Manual plugin registration also failed: {fallback_error}")
                raise RuntimeError(f"Failed to load default plugins: {fallback_error}") from e

        count = len(self._plugins)
        logger.info(f"Loaded {count} default plugins (fallback={fallback_used})")
        if self._event_bus is not None:
            self._event_bus.publish(PluginsLoaded(count=count, fallback_used=fallback_used))
        return count

    def clear(self) -> None:
        self._plugins.clear()
        self._instances.clear()
        logger.info("Cleared all plugins")

    def _discover(self) -> list[PluginClass]:
        discovered: list[PluginClass] = []
        for entry_point in entry_points(group=ENTRY_POINT_GROUP):
            try:
                discovered.append(entry_point.load())
            except Exception as e:
                logger.warning(f"Could not load plugin entry point '{entry_point.name}': {e}")
        return discovered

    def _register_all(self, plugin_classes: Iterable[PluginClass]) -> None:
        for plugin_cls in plugin_classes:
            self.register(plugin_cls)

    def _drop_instances(self, transport_type: TransportType) -> None:
        for key in [key for key in self._instances if key[0] == transport_type]:
            del self._instances[key]
