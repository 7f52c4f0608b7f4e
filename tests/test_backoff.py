"""Tests for retry strategies and connect_with_backoff."""

import asyncio

import pytest

from conftest import EventRecorder, make_config
from mcplink.domain.errors import ConfigurationError, TransportError
from mcplink.domain.events import Reconnecting
from mcplink.domain.types import ConnectionRequest, ConnectionState, TransportType
from mcplink.infrastructure.mcp.connection import (
    ConnectionManager,
    ExponentialBackoffStrategy,
    connect_with_backoff,
)


class TestExponentialBackoffStrategy:
    """Tests for ExponentialBackoffStrategy."""

    def test_calculate_delay(self):
        """Delays grow exponentially and are capped."""
        strategy = ExponentialBackoffStrategy(
            max_attempts=5,
            initial_delay=1.0,
            max_delay=10.0,
            backoff_multiplier=2.0,
        )

        assert strategy.calculate_delay(0) == 1.0
        assert strategy.calculate_delay(1) == 1.0
        assert strategy.calculate_delay(2) == 2.0
        assert strategy.calculate_delay(3) == 4.0
        assert strategy.calculate_delay(4) == 8.0
        assert strategy.calculate_delay(5) == 10.0
        assert strategy.calculate_delay(10) == 10.0

    def test_should_retry(self):
        strategy = ExponentialBackoffStrategy(max_attempts=3)

        assert strategy.should_retry(1) is True
        assert strategy.should_retry(3) is True
        assert strategy.should_retry(4) is False

    @pytest.mark.asyncio
    async def test_wait_reports_progress(self):
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=0.05, progress_update_interval=0.02)
        progress = []

        result = await strategy.wait_before_retry(1, on_progress=lambda *args: progress.append(args))

        assert result is True
        assert progress[0] == (1, 3, 0.05)
        assert all(remaining <= 0.05 for _, _, remaining in progress)

    @pytest.mark.asyncio
    async def test_wait_respects_stop_event(self):
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=5.0)
        stop_event = asyncio.Event()
        stop_event.set()

        start = asyncio.get_running_loop().time()
        result = await strategy.wait_before_retry(1, stop_event=stop_event)

        assert result is False
        assert asyncio.get_running_loop().time() - start < 1.0

    @pytest.mark.asyncio
    async def test_wait_refuses_after_max_attempts(self):
        strategy = ExponentialBackoffStrategy(max_attempts=1, initial_delay=5.0)
        assert await strategy.wait_before_retry(2) is False

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_contained(self):
        strategy = ExponentialBackoffStrategy(max_attempts=1, initial_delay=0.01)

        def broken(*args):
            raise RuntimeError("ui went away")

        assert await strategy.wait_before_retry(1, on_progress=broken) is True


class TestConnectWithBackoff:
    """Tests for the caller-side retry loop."""

    @pytest.fixture
    def manager(self, registry, event_bus, clock):
        return ConnectionManager(
            make_config(max_consecutive_failures=5), registry=registry, event_bus=event_bus, clock=clock
        )

    @pytest.mark.asyncio
    async def test_retries_until_connected(self, manager, server, event_bus, sse_request):
        recorder = EventRecorder(event_bus)
        server.connect_errors.extend([ConnectionRefusedError("refused"), ConnectionRefusedError("refused")])
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=0.01)

        async with manager:
            await connect_with_backoff(manager, sse_request, strategy)

            assert manager.state == ConnectionState.CONNECTED
            assert server.connect_calls == 3

        reconnecting = recorder.of_type(Reconnecting)
        assert [e.attempt for e in reconnecting] == [1, 2]
        assert reconnecting[1].next_retry_delay == pytest.approx(0.02)
        assert reconnecting[0].transport_type == TransportType.SSE

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, manager, server, sse_request):
        server.connect_errors.extend(ConnectionRefusedError("refused") for _ in range(5))
        strategy = ExponentialBackoffStrategy(max_attempts=2, initial_delay=0.01)

        async with manager:
            with pytest.raises(TransportError):
                await connect_with_backoff(manager, sse_request, strategy)

        assert server.connect_calls == 3

    @pytest.mark.asyncio
    async def test_configuration_errors_are_not_retried(self, manager, server):
        request = ConnectionRequest(uri="ftp://nowhere", transport_type=TransportType.SSE)

        async with manager:
            with pytest.raises(ConfigurationError):
                await connect_with_backoff(manager, request, ExponentialBackoffStrategy(initial_delay=0.01))

        assert server.connect_calls == 0

    @pytest.mark.asyncio
    async def test_stop_event_ends_retries(self, manager, server, sse_request):
        server.connect_errors.append(ConnectionRefusedError("refused"))
        stop_event = asyncio.Event()
        stop_event.set()

        async with manager:
            with pytest.raises(TransportError):
                await connect_with_backoff(
                    manager, sse_request, ExponentialBackoffStrategy(initial_delay=5.0), stop_event=stop_event
                )

        assert server.connect_calls == 1
