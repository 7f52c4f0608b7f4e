"""
Utility functions shared across mcplink.
"""

import asyncio
import os
from datetime import datetime
from typing import Awaitable, TypeVar

from mcplink.domain.errors import TransportTimeoutError

T = TypeVar("T")


def get_project_root() -> str:
    """
    Get the project root directory (parent of src/mcplink).

    Returns:
        Absolute path to the project root directory
    """
    return os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def format_time_hhmmss(timestamp: float | None) -> str:
    """
    Format a Unix timestamp as HH:MM:ss.

    Args:
        timestamp: Unix timestamp (float)

    Returns:
        Formatted string like "14:30:45" or "--:--:--" if there is no timestamp
    """
    if not timestamp:
        return "--:--:--"

    dt = datetime.fromtimestamp(timestamp)
    return dt.strftime("%H:%M:%S")


async def run_with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await an operation bounded by a timeout.

    Timeouts surface as TransportTimeoutError so the manager treats them
    exactly like any other transport-shaped failure.

    Args:
        awaitable: The operation to run
        timeout: Seconds to wait before giving up
        operation: Short description used in the error message

    Raises:
        TransportTimeoutError: If the operation does not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise TransportTimeoutError(f"{operation} timeout after {timeout:.1f}s") from exc
