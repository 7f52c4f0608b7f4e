"""Tests for ConnectionLifecycle and FailureTracker."""

from conftest import FakeClock
from mcplink.domain.events import ConnectionStateChanged, EventBus
from mcplink.domain.types import ConnectionState, FailureRecord, TransportType
from mcplink.infrastructure.mcp.connection import ConnectionLifecycle, FailureTracker


class TestConnectionLifecycle:
    """Tests for ConnectionLifecycle."""

    def test_starts_disconnected(self):
        lifecycle = ConnectionLifecycle(EventBus())

        assert lifecycle.state == ConnectionState.DISCONNECTED
        assert lifecycle.is_disconnected
        assert not lifecycle.is_connected

    def test_transitions_are_published(self):
        bus = EventBus()
        events = []
        bus.subscribe(ConnectionStateChanged, events.append)
        lifecycle = ConnectionLifecycle(bus)

        lifecycle.set_state(ConnectionState.CONNECTING, transport_type=TransportType.SSE)
        lifecycle.set_state(ConnectionState.CONNECTED)
        lifecycle.set_state(ConnectionState.CONNECTED)

        assert [(e.previous_state, e.state) for e in events] == [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        ]
        assert events[1].transport_type == TransportType.SSE

    def test_degraded_counts_as_connected(self):
        lifecycle = ConnectionLifecycle(EventBus())
        lifecycle.set_state(ConnectionState.DEGRADED, "Health check failed")

        assert lifecycle.is_connected
        assert lifecycle.error_message == "Health check failed"

    def test_callback_errors_are_contained(self):
        def broken(state):
            raise RuntimeError("ui bug")

        lifecycle = ConnectionLifecycle(EventBus(), on_state_change=broken)
        lifecycle.set_state(ConnectionState.CONNECTING)

        assert lifecycle.state == ConnectionState.CONNECTING


class TestFailureTracker:
    """Tests for FailureTracker."""

    def test_failures_accumulate_until_locked_out(self):
        clock = FakeClock(50.0)
        tracker = FailureTracker(max_consecutive_failures=3, clock=clock)

        tracker.record_failure("refused")
        tracker.record_failure("refused")
        assert not tracker.is_locked_out

        record = tracker.record_failure("timeout")
        assert tracker.is_locked_out
        assert record == FailureRecord(consecutive_failures=3, last_error="timeout", last_error_at=50.0)

    def test_relax_decrements_with_floor_of_one(self):
        tracker = FailureTracker(max_consecutive_failures=3)
        for _ in range(3):
            tracker.record_failure("refused")

        assert tracker.relax() is True
        assert tracker.consecutive_failures == 2
        assert not tracker.is_locked_out
        assert tracker.relax() is True
        assert tracker.relax() is False
        assert tracker.consecutive_failures == 1
        assert tracker.record.last_error == "refused"

    def test_relax_with_threshold_of_one_lifts_lockout(self):
        tracker = FailureTracker(max_consecutive_failures=1)
        tracker.record_failure("refused")
        assert tracker.is_locked_out

        assert tracker.relax() is True
        assert tracker.consecutive_failures == 0
        assert not tracker.is_locked_out
        assert tracker.record.last_error == "refused"
        assert tracker.relax() is False

    def test_relax_on_clean_record_is_noop(self):
        changes = []
        tracker = FailureTracker(on_change=changes.append)

        assert tracker.relax() is False
        assert changes == []

    def test_success_and_reset_clear_history(self):
        changes = []
        tracker = FailureTracker(on_change=changes.append)
        tracker.record_failure("refused")
        tracker.record_success()
        tracker.record_success()

        assert tracker.record == FailureRecord()
        assert [c.consecutive_failures for c in changes] == [1, 0]

        tracker.record_failure("refused")
        tracker.reset()
        assert tracker.record == FailureRecord()
