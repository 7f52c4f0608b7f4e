"""Connection-related domain types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["TransportType", "ConnectionState", "FailureRecord", "ConnectionRequest"]


class TransportType(str, Enum):
    """Wire transports a plugin can provide."""

    SSE = "sse"
    WEBSOCKET = "websocket"
    STREAMABLE_HTTP = "streamable-http"


class ConnectionState(Enum):
    """State of the single logical connection owned by a ConnectionManager.

    DEGRADED means connected but the most recent health check failed; one
    more failure demotes it to DISCONNECTED. PERMANENTLY_FAILED is entered
    when a connect is refused because too many attempts failed in a row and
    is always left again by the periodic recovery routine.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass(frozen=True)
class FailureRecord:
    """Snapshot of consecutive connection failures."""

    consecutive_failures: int = 0
    last_error: str | None = None
    last_error_at: float | None = None


class ConnectionRequest(BaseModel):
    """A request to connect to one server over one transport."""

    uri: str = Field(..., description="Server endpoint URI")
    transport_type: TransportType = Field(..., description="Transport plugin to use")
    plugin_config: Mapping[str, Any] = Field(
        default_factory=dict, description="Per-plugin configuration overrides"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("uri")
    @classmethod
    def _strip_uri(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("uri must not be empty")
        return value

    @property
    def target(self) -> tuple[str, TransportType]:
        """Identity of the server endpoint this request points at."""
        return (self.uri, self.transport_type)
