"""Transport plugin contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Mapping, Protocol, runtime_checkable

from mcplink.domain.types import Primitive, TransportType

__all__ = [
    "PluginMetadata",
    "TransportHandle",
    "TransportPlugin",
    "SupportsListingProbe",
    "SupportsConnectionLossCallback",
    "ConnectionLostCallback",
]

ConnectionLostCallback = Callable[[Any, str], None]
"""Called with (handle, reason) when a channel drops on its own."""


@dataclass(frozen=True)
class PluginMetadata:
    name: str
    version: str
    transport_type: TransportType
    description: str | None = None


class TransportHandle(Protocol):
    """An open channel returned by ``TransportPlugin.connect``.

    The channel is open but the protocol handshake has not happened yet;
    the connection manager calls ``initialize`` to perform it.
    """

    @property
    def uri(self) -> str: ...

    @property
    def is_closed(self) -> bool: ...

    async def initialize(self) -> Any:
        """Run the protocol handshake over the open channel."""
        ...


class TransportPlugin(Protocol):
    """Protocol every transport plugin satisfies.

    Plugins are constructed from a validated configuration by the plugin
    registry. Failures are reported with the exceptions in
    ``mcplink.domain.errors``:

    * ``connect`` raises ``TransportError`` for refused or timed out
      channels and ``ConfigurationError`` for malformed URIs, and never
      leaves a half-open channel behind.
    * ``call_tool`` raises ``ToolError`` when the server rejects the call
      and ``TransportError`` when the channel fails.
    * ``is_healthy`` never raises.
    * ``disconnect`` is idempotent.
    """

    metadata: ClassVar[PluginMetadata]

    def __init__(self, config: Mapping[str, Any] | None = None) -> None: ...

    def is_supported(self, uri: str) -> bool: ...

    async def connect(self, uri: str) -> TransportHandle: ...

    async def call_tool(self, handle: Any, name: str, arguments: dict[str, Any]) -> Any: ...

    async def get_primitives(self, handle: Any) -> list[Primitive]: ...

    async def is_healthy(self, handle: Any) -> bool: ...

    async def disconnect(self, handle: Any) -> None: ...


@runtime_checkable
class SupportsListingProbe(Protocol):
    """Optional second health probe that exercises a real request."""

    async def probe_listing(self, handle: Any) -> bool: ...


@runtime_checkable
class SupportsConnectionLossCallback(Protocol):
    """Optional push notification when a channel drops between requests."""

    def set_connection_lost_callback(self, callback: ConnectionLostCallback | None) -> None: ...
