"""Event system for decoupled component communication.

The connection manager publishes lifecycle events on an EventBus and
whatever sits on the other side (a message router, a CLI, logging)
subscribes to the event types it cares about.

Example:
    ```python
    from mcplink.domain.events import EventBus, Connected

    event_bus = EventBus()

    def handle_connected(event: Connected):
        print(f"Connected to {event.uri} via {event.transport_type.value}")

    event_bus.subscribe(Connected, handle_connected)
    ```
"""

from .bus import EventBus
from .types import (
    Connected,
    Connecting,
    ConnectionStateChanged,
    Disconnected,
    Event,
    FailureRecordChanged,
    HealthCheckResult,
    PluginRegistered,
    PluginsLoaded,
    Reconnecting,
    ToolCallCompleted,
    ToolCallFailed,
    ToolCallStarted,
    ToolsListUpdated,
)

__all__ = [
    "EventBus",
    "Event",
    "Connecting",
    "Connected",
    "Disconnected",
    "ConnectionStateChanged",
    "HealthCheckResult",
    "ToolsListUpdated",
    "ToolCallStarted",
    "ToolCallCompleted",
    "ToolCallFailed",
    "Reconnecting",
    "FailureRecordChanged",
    "PluginRegistered",
    "PluginsLoaded",
]
