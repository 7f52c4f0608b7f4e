"""Server-Sent Events transport plugin."""

from contextlib import AbstractAsyncContextManager
from typing import Any, ClassVar

from mcp.client.sse import sse_client

from mcplink.config import SSEPluginConfig
from mcplink.domain.protocols import PluginMetadata
from mcplink.domain.types import TransportType

from .base import BaseSessionPlugin


class SSEPlugin(BaseSessionPlugin):
    """MCP over an HTTP event stream plus POSTed messages."""

    metadata: ClassVar[PluginMetadata] = PluginMetadata(
        name="SSE Transport Plugin",
        version="1.0.0",
        transport_type=TransportType.SSE,
        description="Server-Sent Events transport for the MCP protocol",
    )

    config: SSEPluginConfig

    def _open_streams(self, uri: str) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        return sse_client(
            uri,
            headers=dict(self.config.headers) or None,
            timeout=self.config.connection_timeout,
            sse_read_timeout=self.config.read_timeout,
        )
