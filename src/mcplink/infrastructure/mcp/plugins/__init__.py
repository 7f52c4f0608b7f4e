"""Bundled transport plugins.

``BUNDLED_PLUGINS`` is the static list the plugin registry falls back to
when entry-point discovery is unavailable.
"""

from .base import BaseSessionPlugin, SessionTransportHandle
from .sse import SSEPlugin
from .streamable_http import StreamableHttpPlugin
from .websocket import WebSocketPlugin

BUNDLED_PLUGINS = (SSEPlugin, WebSocketPlugin, StreamableHttpPlugin)

__all__ = [
    "BUNDLED_PLUGINS",
    "BaseSessionPlugin",
    "SessionTransportHandle",
    "SSEPlugin",
    "StreamableHttpPlugin",
    "WebSocketPlugin",
]
