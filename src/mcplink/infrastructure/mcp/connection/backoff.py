"""Caller-side retry strategies for connecting to a server.

The connection manager never retries on its own; it records each failure
and reports it. Callers that want to keep trying (the CLI at startup, a
long-running router) wrap ``ConnectionManager.connect`` with
``connect_with_backoff``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional

from mcplink.domain.errors import TransportError
from mcplink.domain.events import Reconnecting
from mcplink.domain.types import ConnectionRequest
from mcplink.logger import get_logger

if TYPE_CHECKING:
    from .manager import ConnectionManager

logger = get_logger("connection.backoff")

ProgressCallback = Callable[[int, int, float], None]


class ReconnectionStrategy(ABC):
    """Abstract base class for reconnection strategies."""

    @abstractmethod
    async def wait_before_retry(
        self,
        attempt: int,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """
        Wait before the next connection attempt.

        Args:
            attempt: Number of failed attempts so far (1-indexed)
            on_progress: Optional callback (attempt, max_attempts, remaining_seconds)
            stop_event: Optional event to abort the wait

        Returns:
            True if the caller should try again, False if it should give up
        """

    @abstractmethod
    def should_retry(self, attempt: int) -> bool:
        """Check if another attempt is allowed after ``attempt`` failures."""

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt`` failures."""

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        """Maximum number of retries."""


class ExponentialBackoffStrategy(ReconnectionStrategy):
    """Retry with exponentially growing, capped delays."""

    def __init__(
        self,
        max_attempts: int = 5,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 2.0,
        progress_update_interval: float = 2.0,
    ):
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._backoff_multiplier = backoff_multiplier
        self._progress_update_interval = progress_update_interval

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def calculate_delay(self, attempt: int) -> float:
        if attempt <= 0:
            return self._initial_delay
        delay = self._initial_delay * (self._backoff_multiplier ** (attempt - 1))
        return min(delay, self._max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt <= self._max_attempts

    async def wait_before_retry(
        self,
        attempt: int,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        if not self.should_retry(attempt):
            return False

        delay = self.calculate_delay(attempt)
        logger.info(f"Waiting {delay:.1f}s before retry (attempt {attempt}/{self._max_attempts})")
        self._notify(on_progress, attempt, delay)

        elapsed = 0.0
        while elapsed < delay:
            if stop_event and stop_event.is_set():
                logger.info("Stop requested during retry delay")
                return False

            sleep_duration = min(self._progress_update_interval, delay - elapsed)
            await asyncio.sleep(sleep_duration)
            elapsed += sleep_duration

            remaining = delay - elapsed
            if remaining > 0:
                self._notify(on_progress, attempt, remaining)

        if stop_event and stop_event.is_set():
            logger.info("Stop requested after retry delay")
            return False
        return True

    def _notify(self, on_progress: Optional[ProgressCallback], attempt: int, remaining: float) -> None:
        if on_progress is None:
            return
        try:
            on_progress(attempt, self._max_attempts, remaining)
        except Exception as e:
            logger.error(f"Error in progress callback: {e}")


async def connect_with_backoff(
    manager: ConnectionManager,
    request: ConnectionRequest,
    strategy: Optional[ReconnectionStrategy] = None,
    on_progress: Optional[ProgressCallback] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Connect, retrying transport failures according to ``strategy``.

    Configuration errors are raised immediately. Each retry publishes a
    ``Reconnecting`` event on the manager's bus. While the manager is locked
    out after repeated failures, retries keep failing fast until its
    recovery routine lifts the lockout.

    Raises:
        TransportError: The last failure, once the strategy gives up
    """
    strategy = strategy or ExponentialBackoffStrategy()
    attempt = 0
    while True:
        try:
            await manager.connect(request)
            if attempt:
                logger.info(f"Connected after {attempt} retr{'y' if attempt == 1 else 'ies'}")
            return
        except TransportError as e:
            attempt += 1
            if not strategy.should_retry(attempt):
                logger.error(f"Giving up on {request.uri} after {attempt} failed attempt(s): {e}")
                raise

            manager.event_bus.publish(
                Reconnecting(
                    attempt=attempt,
                    max_attempts=strategy.max_attempts,
                    next_retry_delay=strategy.calculate_delay(attempt),
                    transport_type=request.transport_type,
                )
            )
            if not await strategy.wait_before_retry(attempt, on_progress, stop_event):
                raise
