"""Domain types shared by the manager, plugins and consumers."""

from .connection import (
    ConnectionRequest,
    ConnectionState,
    FailureRecord,
    TransportType,
)
from .primitives import (
    Primitive,
    PrimitiveKind,
    PrimitivesSnapshot,
    Prompt,
    Resource,
    Tool,
    ToolCallOutcome,
)

__all__ = [
    "ConnectionRequest",
    "ConnectionState",
    "FailureRecord",
    "TransportType",
    "Primitive",
    "PrimitiveKind",
    "PrimitivesSnapshot",
    "Prompt",
    "Resource",
    "Tool",
    "ToolCallOutcome",
]
