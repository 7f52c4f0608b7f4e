"""mcplink: a resilient client for MCP servers over pluggable transports."""

__version__ = "0.1.0"

from mcplink.config import ClientConfig, GlobalSettings, load_client_config
from mcplink.domain.errors import (
    ConfigurationError,
    ConnectionSupersededError,
    ErrorKind,
    McpLinkError,
    ToolError,
    TransportError,
    TransportTimeoutError,
    categorize_error,
)
from mcplink.domain.events import EventBus
from mcplink.domain.types import (
    ConnectionRequest,
    ConnectionState,
    FailureRecord,
    PrimitivesSnapshot,
    Prompt,
    Resource,
    Tool,
    ToolCallOutcome,
    TransportType,
)
from mcplink.infrastructure.mcp.connection import (
    ConnectionManager,
    ExponentialBackoffStrategy,
    PluginHandle,
    connect_with_backoff,
)
from mcplink.infrastructure.mcp.registry import PluginRegistry

__all__ = [
    "__version__",
    "ClientConfig",
    "GlobalSettings",
    "load_client_config",
    "ConfigurationError",
    "ConnectionSupersededError",
    "ErrorKind",
    "McpLinkError",
    "ToolError",
    "TransportError",
    "TransportTimeoutError",
    "categorize_error",
    "EventBus",
    "ConnectionRequest",
    "ConnectionState",
    "FailureRecord",
    "PrimitivesSnapshot",
    "Prompt",
    "Resource",
    "Tool",
    "ToolCallOutcome",
    "TransportType",
    "ConnectionManager",
    "ExponentialBackoffStrategy",
    "PluginHandle",
    "connect_with_backoff",
    "PluginRegistry",
]
