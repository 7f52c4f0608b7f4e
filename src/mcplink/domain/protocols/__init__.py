"""Domain protocols: the structural contracts implementations must satisfy."""

from mcplink.domain.protocols.plugin import (
    ConnectionLostCallback,
    PluginMetadata,
    SupportsConnectionLossCallback,
    SupportsListingProbe,
    TransportHandle,
    TransportPlugin,
)

__all__ = [
    "ConnectionLostCallback",
    "PluginMetadata",
    "SupportsConnectionLossCallback",
    "SupportsListingProbe",
    "TransportHandle",
    "TransportPlugin",
]
