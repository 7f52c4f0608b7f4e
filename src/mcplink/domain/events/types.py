"""Event types published by the connection manager and plugin registry.

Every event carries the Unix timestamp of its creation. Connection and tool
events also carry the transport type in use, when one is known.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from mcplink.domain.errors import ErrorKind
from mcplink.domain.types.connection import ConnectionState, FailureRecord, TransportType
from mcplink.domain.types.primitives import Tool


@dataclass
class Event:
    """Base class for all events.

    The timestamp field is automatically set when the event is created.
    """

    timestamp: float = field(default_factory=time.time, init=False)
    """Timestamp when the event was created (Unix timestamp)."""


@dataclass
class Connecting(Event):
    """A connection attempt has started."""

    uri: str
    transport_type: TransportType


@dataclass
class Connected(Event):
    """A connection attempt completed and the session is initialized."""

    uri: str
    transport_type: TransportType


@dataclass
class Disconnected(Event):
    """The connection is gone, either on request or because it failed.

    Attributes:
        transport_type: Transport of the connection that went away
        error: Failure description, None for a requested disconnect
    """

    transport_type: TransportType | None
    error: str | None = None


@dataclass
class ConnectionStateChanged(Event):
    """The authoritative connection state moved to a new value."""

    state: ConnectionState
    """New connection state."""
    previous_state: ConnectionState
    """State before the transition."""
    transport_type: TransportType | None = None
    error: str | None = None


@dataclass
class HealthCheckResult(Event):
    """Outcome of one periodic or on-demand health probe."""

    healthy: bool
    transport_type: TransportType | None = None


@dataclass
class ToolsListUpdated(Event):
    """A fresh primitives snapshot was fetched from the server."""

    tools: list[Tool]
    transport_type: TransportType | None = None


@dataclass
class ToolCallStarted(Event):
    tool_name: str
    arguments: dict[str, Any]
    transport_type: TransportType | None = None


@dataclass
class ToolCallCompleted(Event):
    tool_name: str
    duration: float
    """Seconds spent waiting for the result."""
    transport_type: TransportType | None = None


@dataclass
class ToolCallFailed(Event):
    tool_name: str
    error_kind: ErrorKind
    message: str
    duration: float
    transport_type: TransportType | None = None


@dataclass
class Reconnecting(Event):
    """Published by the caller-side backoff loop before each retry.

    Attributes:
        attempt: Failed attempt number that triggered the wait (1-based)
        max_attempts: Maximum number of attempts the loop will make
        next_retry_delay: Seconds until the next attempt
    """

    attempt: int
    max_attempts: int
    next_retry_delay: float
    transport_type: TransportType | None = None


@dataclass
class FailureRecordChanged(Event):
    """The consecutive-failure record changed (failure, success, recovery, reset)."""

    record: FailureRecord


@dataclass
class PluginRegistered(Event):
    transport_type: TransportType
    name: str


@dataclass
class PluginsLoaded(Event):
    """Default plugins were loaded into a registry.

    Attributes:
        count: Number of registered plugins after loading
        fallback_used: True when discovery failed and the bundled plugin
            classes were registered manually
    """

    count: int
    fallback_used: bool = False
