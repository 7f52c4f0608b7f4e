"""WebSocket transport plugin."""

from contextlib import AbstractAsyncContextManager
from typing import Any, ClassVar, Optional

from mcp.client.websocket import websocket_client

from mcplink.config import WebSocketPluginConfig
from mcplink.domain.protocols import PluginMetadata
from mcplink.domain.types import TransportType

from .base import BaseSessionPlugin


class WebSocketPlugin(BaseSessionPlugin):
    """MCP over a bidirectional WebSocket (``mcp`` subprotocol)."""

    metadata: ClassVar[PluginMetadata] = PluginMetadata(
        name="WebSocket Transport Plugin",
        version="1.0.0",
        transport_type=TransportType.WEBSOCKET,
        description="WebSocket transport for the MCP protocol with bidirectional messaging",
    )
    supported_schemes: ClassVar[tuple[str, ...]] = ("ws", "wss")

    config: WebSocketPluginConfig

    @property
    def open_timeout(self) -> Optional[float]:
        # websocket_client has no timeout of its own
        return self.config.connection_timeout

    def _open_streams(self, uri: str) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        return websocket_client(uri)

    def _describe_failure(self, message: str) -> str:
        if "protocol" in message.lower():
            return f"WebSocket protocol error. The server may not support the 'mcp' subprotocol. ({message})"
        return super()._describe_failure(message)
