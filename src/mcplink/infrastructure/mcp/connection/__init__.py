"""Connection management: lifecycle, failure tracking, health and retries."""

from .backoff import ExponentialBackoffStrategy, ReconnectionStrategy, connect_with_backoff
from .failures import FailureTracker
from .health import HealthChecker
from .lifecycle import ConnectionLifecycle
from .manager import ConnectionManager, PluginHandle

__all__ = [
    "ConnectionLifecycle",
    "ConnectionManager",
    "ExponentialBackoffStrategy",
    "FailureTracker",
    "HealthChecker",
    "PluginHandle",
    "ReconnectionStrategy",
    "connect_with_backoff",
]
