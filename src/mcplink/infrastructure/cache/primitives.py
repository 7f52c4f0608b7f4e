"""Cache for the primitives advertised by the current connection."""

import time

from mcplink.domain.types import PrimitivesSnapshot
from mcplink.infrastructure.cache.ttl import Clock, TTLCache
from mcplink.logger import get_logger

logger = get_logger("cache.primitives")

_CURRENT = "current"


class PrimitivesCache:
    """Single-slot TTL cache holding the latest PrimitivesSnapshot.

    There is only ever one live connection, so the slot is keyed implicitly
    by "the current connection" and is invalidated wholesale whenever that
    connection changes.
    """

    def __init__(self, ttl: float = 300.0, clock: Clock = time.monotonic) -> None:
        self._cache: TTLCache[str, PrimitivesSnapshot] = TTLCache(ttl=ttl, clock=clock)

    @property
    def ttl(self) -> float:
        return self._cache.ttl

    def get(self, force_refresh: bool = False) -> PrimitivesSnapshot | None:
        """
        Return the cached snapshot when it is still fresh.

        Args:
            force_refresh: Treat the cache as empty, so the caller refetches

        Returns:
            The snapshot, or None when a fetch is needed
        """
        if force_refresh:
            return None
        return self._cache.get(_CURRENT)

    def store(self, snapshot: PrimitivesSnapshot) -> None:
        """Replace the cached snapshot."""
        self._cache.set(_CURRENT, snapshot)
        logger.debug(f"Cached {len(snapshot.primitives)} primitives (ttl={self._cache.ttl}s)")

    def invalidate(self) -> None:
        """Drop the cached snapshot."""
        if _CURRENT in self._cache:
            logger.debug("Primitives cache invalidated")
        self._cache.clear()

    @property
    def is_fresh(self) -> bool:
        return _CURRENT in self._cache
