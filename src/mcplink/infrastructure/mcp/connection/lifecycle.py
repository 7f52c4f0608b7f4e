"""Authoritative connection state for one ConnectionManager."""

from typing import Callable, Optional

from mcplink.domain.events import ConnectionStateChanged, EventBus
from mcplink.domain.types import ConnectionState, TransportType
from mcplink.logger import get_logger

logger = get_logger("connection.lifecycle")


class ConnectionLifecycle:
    """Holds the single ConnectionState value and announces every transition."""

    def __init__(
        self,
        event_bus: EventBus,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
    ):
        """
        Initialize connection lifecycle.

        Args:
            event_bus: Bus that receives a ConnectionStateChanged per transition
            on_state_change: Optional callback invoked with the new state
        """
        self._state = ConnectionState.DISCONNECTED
        self._event_bus = event_bus
        self._on_state_change = on_state_change
        self._error_message: Optional[str] = None
        self._transport_type: Optional[TransportType] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Connected, possibly degraded."""
        return self._state in (ConnectionState.CONNECTED, ConnectionState.DEGRADED)

    @property
    def is_disconnected(self) -> bool:
        return self._state == ConnectionState.DISCONNECTED

    @property
    def error_message(self) -> Optional[str]:
        """Error attached to the most recent transition, if any."""
        return self._error_message

    @property
    def transport_type(self) -> Optional[TransportType]:
        return self._transport_type

    def set_state(
        self,
        state: ConnectionState,
        error_message: Optional[str] = None,
        transport_type: Optional[TransportType] = None,
    ) -> None:
        """
        Move to a new state and notify listeners.

        Re-entering the current state only refreshes the error message.

        Args:
            state: New connection state
            error_message: Optional failure description for this transition
            transport_type: Transport the transition concerns, if known
        """
        if transport_type is not None:
            self._transport_type = transport_type
        self._error_message = error_message

        if self._state == state:
            return

        previous = self._state
        self._state = state
        logger.debug(f"State changed: {previous.value} -> {state.value}")

        self._event_bus.publish(
            ConnectionStateChanged(
                state=state,
                previous_state=previous,
                transport_type=self._transport_type,
                error=error_message,
            )
        )

        if self._on_state_change:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")
