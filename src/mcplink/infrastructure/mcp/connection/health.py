"""Periodic health probing of a live connection."""

import asyncio
from typing import Awaitable, Callable, Optional

from mcplink.logger import get_logger

logger = get_logger("connection.health")

HealthProbe = Callable[[], Awaitable[bool]]
HealthResultHandler = Callable[[bool], bool]


class HealthChecker:
    """Runs a probe on a fixed interval and reports each outcome.

    The checker holds no opinion on what a failed probe means. It hands the
    result to ``on_result``, which returns whether monitoring should go on;
    the connection manager uses that to step CONNECTED -> DEGRADED ->
    DISCONNECTED and to stop the timer once the connection is gone.
    """

    def __init__(self, check_interval: float = 30.0):
        """
        Initialize health checker.

        Args:
            check_interval: Seconds between probes. 0 disables monitoring.
        """
        self._check_interval = check_interval
        self._task: Optional[asyncio.Task] = None

    @property
    def check_interval(self) -> float:
        return self._check_interval

    @property
    def is_running(self) -> bool:
        """Check if health checker is running."""
        return self._task is not None and not self._task.done()

    def start(self, probe: HealthProbe, on_result: HealthResultHandler) -> None:
        """
        Start monitoring, replacing any loop that is already running.

        Args:
            probe: Coroutine function returning True when the connection is healthy
            on_result: Receives each probe result, returns False to stop monitoring
        """
        if self._check_interval <= 0:
            logger.debug("Health checks disabled (interval=0)")
            return

        self.cancel()
        self._task = asyncio.create_task(self._health_check_loop(probe, on_result))
        logger.info(f"Health checker started (interval={self._check_interval}s)")

    def cancel(self) -> None:
        """Request the loop to stop without waiting for it.

        Safe to call from inside ``on_result``: the loop then simply ends
        after the callback returns.
        """
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    async def stop(self) -> None:
        """Stop health check monitoring and wait for the loop to finish."""
        task = self._task
        self.cancel()
        if task is None or task is asyncio.current_task():
            return

        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Error stopping health checker: {e}")
        logger.info("Health checker stopped")

    async def _health_check_loop(self, probe: HealthProbe, on_result: HealthResultHandler) -> None:
        try:
            while True:
                await asyncio.sleep(self._check_interval)

                try:
                    healthy = await probe()
                except Exception as e:
                    logger.warning(f"Health probe raised: {e}")
                    healthy = False

                if healthy:
                    logger.debug("Health check passed")
                else:
                    logger.warning("Health check failed")

                try:
                    keep_running = on_result(healthy)
                except Exception as e:
                    logger.error(f"Error in health result callback: {e}")
                    keep_running = True

                if not keep_running:
                    logger.info("Health monitoring ended")
                    break
        except asyncio.CancelledError:
            logger.debug("Health check loop cancelled")
            raise
