"""Tests for the TTL caches."""

from conftest import FakeClock
from mcplink.domain.types import PrimitivesSnapshot, Tool
from mcplink.infrastructure.cache import PrimitivesCache, TTLCache


def _snapshot(*names):
    return PrimitivesSnapshot(primitives=tuple(Tool(name=n) for n in names), fetched_at=0.0)


class TestTTLCache:
    """Tests for TTLCache."""

    def test_entries_expire(self):
        clock = FakeClock()
        cache = TTLCache[str, int](ttl=10.0, clock=clock)
        cache.set("answer", 42)

        clock.advance(9.9)
        assert cache.get("answer") == 42
        assert "answer" in cache

        clock.advance(0.1)
        assert cache.get("answer") is None
        assert len(cache) == 0

    def test_clear_one_or_all(self):
        cache = TTLCache[str, int](ttl=10.0, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.clear()
        assert len(cache) == 0


class TestPrimitivesCache:
    """Tests for PrimitivesCache."""

    def test_returns_same_snapshot_within_ttl(self):
        clock = FakeClock()
        cache = PrimitivesCache(ttl=300.0, clock=clock)
        snapshot = _snapshot("echo")
        cache.store(snapshot)

        clock.advance(299)
        assert cache.get() is snapshot
        assert cache.is_fresh

        clock.advance(1)
        assert cache.get() is None
        assert not cache.is_fresh

    def test_force_refresh_bypasses_cache(self):
        cache = PrimitivesCache(clock=FakeClock())
        cache.store(_snapshot("echo"))

        assert cache.get(force_refresh=True) is None
        assert cache.get() is not None

    def test_store_replaces_wholesale(self):
        cache = PrimitivesCache(clock=FakeClock())
        cache.store(_snapshot("echo", "add"))
        cache.store(_snapshot("search"))

        assert [t.name for t in cache.get().tools] == ["search"]

    def test_invalidate(self):
        cache = PrimitivesCache(clock=FakeClock())
        cache.store(_snapshot("echo"))
        cache.invalidate()

        assert cache.get() is None
        cache.invalidate()
