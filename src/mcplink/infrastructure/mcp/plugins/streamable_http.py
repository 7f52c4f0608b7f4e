"""Streamable HTTP transport plugin."""

from contextlib import AbstractAsyncContextManager
from datetime import timedelta
from typing import Any, ClassVar

from mcp.client.streamable_http import streamablehttp_client

from mcplink.config import StreamableHttpPluginConfig
from mcplink.domain.protocols import PluginMetadata
from mcplink.domain.types import TransportType

from .base import BaseSessionPlugin


class StreamableHttpPlugin(BaseSessionPlugin):
    """MCP over the single-endpoint streamable HTTP transport.

    The HTTP exchange starts lazily, so an unreachable server usually
    surfaces during the handshake rather than while opening the channel.
    """

    metadata: ClassVar[PluginMetadata] = PluginMetadata(
        name="Streamable HTTP Transport Plugin",
        version="1.0.0",
        transport_type=TransportType.STREAMABLE_HTTP,
        description="Streamable HTTP transport for the MCP protocol",
    )

    config: StreamableHttpPluginConfig

    def _open_streams(self, uri: str) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        return streamablehttp_client(
            url=uri,
            headers=dict(self.config.headers) or None,
            timeout=timedelta(seconds=self.config.connection_timeout),
            sse_read_timeout=timedelta(seconds=self.config.read_timeout),
            terminate_on_close=self.config.terminate_on_close,
        )
