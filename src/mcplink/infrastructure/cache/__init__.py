"""Caching implementations used by the connection manager."""

from mcplink.infrastructure.cache.primitives import PrimitivesCache
from mcplink.infrastructure.cache.ttl import TTLCache

__all__ = [
    "PrimitivesCache",
    "TTLCache",
]
