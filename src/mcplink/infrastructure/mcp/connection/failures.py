"""Consecutive-failure bookkeeping and the recovery policy."""

import time
from typing import Callable, Optional

from mcplink.domain.types import FailureRecord
from mcplink.logger import get_logger

logger = get_logger("connection.failures")


class FailureTracker:
    """Owns the FailureRecord of a connection manager.

    After ``max_consecutive_failures`` failed attempts new connects are
    refused. The lockout is never permanent: ``relax`` (run on a fixed
    schedule) lowers the count by one per call, which is never faster than
    failures accumulate. It keeps one failure on record while that still
    leaves room below the threshold; with a threshold of one it lowers the
    count to zero so a single failure cannot lock connects out for good.
    Only a successful connect or an explicit ``reset`` clears the last error.
    """

    def __init__(
        self,
        max_consecutive_failures: int = 3,
        clock: Callable[[], float] = time.time,
        on_change: Optional[Callable[[FailureRecord], None]] = None,
    ):
        self._max = max_consecutive_failures
        self._clock = clock
        self._on_change = on_change
        self._record = FailureRecord()

    @property
    def record(self) -> FailureRecord:
        return self._record

    @property
    def consecutive_failures(self) -> int:
        return self._record.consecutive_failures

    @property
    def max_consecutive_failures(self) -> int:
        return self._max

    @property
    def is_locked_out(self) -> bool:
        return self._record.consecutive_failures >= self._max

    def record_failure(self, error: str) -> FailureRecord:
        self._set(
            FailureRecord(
                consecutive_failures=self._record.consecutive_failures + 1,
                last_error=error,
                last_error_at=self._clock(),
            )
        )
        return self._record

    def record_success(self) -> None:
        if self._record != FailureRecord():
            self._set(FailureRecord())

    def reset(self) -> None:
        """Full reset: user-initiated recovery starts from a clean slate."""
        if self._record != FailureRecord():
            logger.info("Failure state fully reset")
            self._set(FailureRecord())

    def relax(self) -> bool:
        """
        Incremental recovery step.

        Returns:
            True if the count was lowered
        """
        count = self._record.consecutive_failures
        floor = min(1, self._max - 1)
        if count <= floor:
            return False
        self._set(
            FailureRecord(
                consecutive_failures=count - 1,
                last_error=self._record.last_error,
                last_error_at=self._record.last_error_at,
            )
        )
        logger.info(f"Failure count relaxed {count} -> {count - 1} (max={self._max})")
        return True

    def _set(self, record: FailureRecord) -> None:
        self._record = record
        if self._on_change:
            try:
                self._on_change(record)
            except Exception as e:
                logger.error(f"Error in failure record callback: {e}")
