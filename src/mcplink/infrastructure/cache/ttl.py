"""TTL (Time-To-Live) cache implementation.

Entries expire a fixed time after they were stored. Expired entries are
dropped lazily when the cache is read.
"""

import time
from typing import Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Generic[K, V]):
    """TTL-based cache.

    Example:
        >>> cache = TTLCache[str, int](ttl=60.0)
        >>> cache.set("key1", 42)
        >>> cache.get("key1")
        42
    """

    def __init__(self, ttl: float = 300.0, clock: Clock = time.monotonic) -> None:
        """Initialize a TTL cache.

        Args:
            ttl: Time-to-live in seconds. Default is 300 seconds (5 minutes).
            clock: Monotonic time source, injectable for tests.
        """
        self._data: dict[K, tuple[V, float]] = {}  # (value, expiration_time)
        self.ttl = ttl
        self._clock = clock

    def _cleanup_expired(self) -> None:
        now = self._clock()
        expired_keys = [key for key, (_, exp_time) in self._data.items() if now >= exp_time]
        for key in expired_keys:
            del self._data[key]

    def get(self, key: K) -> V | None:
        """Return the cached value, or None if missing or expired."""
        self._cleanup_expired()
        entry = self._data.get(key)
        if entry is None:
            return None
        return entry[0]

    def set(self, key: K, value: V) -> None:
        """Store a value; it expires ``ttl`` seconds from now."""
        self._data[key] = (value, self._clock() + self.ttl)

    def clear(self, key: K | None = None) -> None:
        """Clear one key, or every entry when key is None."""
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)

    def __len__(self) -> int:
        self._cleanup_expired()
        return len(self._data)

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None
