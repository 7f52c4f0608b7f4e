"""Tests for the HealthChecker loop."""

import asyncio

import pytest

from conftest import wait_until
from mcplink.infrastructure.mcp.connection import HealthChecker


class TestHealthChecker:
    """Tests for HealthChecker."""

    @pytest.mark.asyncio
    async def test_reports_each_probe(self):
        checker = HealthChecker(check_interval=0.01)
        results = []

        async def probe():
            return True

        def on_result(healthy):
            results.append(healthy)
            return len(results) < 3

        checker.start(probe, on_result)

        assert await wait_until(lambda: not checker.is_running)
        assert results == [True, True, True]

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_unhealthy(self):
        checker = HealthChecker(check_interval=0.01)
        results = []

        async def probe():
            raise RuntimeError("ping exploded")

        checker.start(probe, lambda healthy: results.append(healthy) or False)

        assert await wait_until(lambda: results == [False])

    @pytest.mark.asyncio
    async def test_stop_cancels_loop(self):
        checker = HealthChecker(check_interval=10.0)

        async def probe():
            return True

        checker.start(probe, lambda healthy: True)
        assert checker.is_running

        await checker.stop()

        assert not checker.is_running

    @pytest.mark.asyncio
    async def test_stop_from_inside_callback(self):
        """Stopping from the result callback ends the loop without deadlocking."""
        checker = HealthChecker(check_interval=0.01)
        stopped = asyncio.Event()

        async def probe():
            return False

        def on_result(healthy):
            checker.cancel()
            stopped.set()
            return False

        checker.start(probe, on_result)

        await asyncio.wait_for(stopped.wait(), timeout=1.0)
        assert not checker.is_running

    @pytest.mark.asyncio
    async def test_restart_replaces_running_loop(self):
        checker = HealthChecker(check_interval=10.0)

        async def probe():
            return True

        checker.start(probe, lambda healthy: True)
        first = checker._task
        checker.start(probe, lambda healthy: True)
        await asyncio.sleep(0)

        assert first.cancelled()
        await checker.stop()

    @pytest.mark.asyncio
    async def test_zero_interval_disables_monitoring(self):
        checker = HealthChecker(check_interval=0)

        async def probe():
            return True

        checker.start(probe, lambda healthy: True)

        assert not checker.is_running
