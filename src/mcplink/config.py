"""Client configuration.

Configuration is a JSON document with a ``global`` section for the
connection manager and one section per transport plugin. Environment
variables (optionally from a ``.env`` file) override the default target.
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mcplink.domain.errors import ConfigurationError
from mcplink.domain.types import ConnectionRequest, TransportType
from mcplink.logger import get_logger
from mcplink.utils import get_project_root

logger = get_logger("config")

DEFAULT_SSE_URI = "http://localhost:3006/sse"
DEFAULT_WEBSOCKET_URI = "ws://localhost:3006/message"
DEFAULT_STREAMABLE_HTTP_URI = "http://localhost:3006/mcp"


class GlobalSettings(BaseModel):
    """Timing and retry policy of the connection manager (seconds)."""

    operation_timeout: float = Field(30.0, gt=0, description="Bound on connect, handshake, call and probe")
    max_consecutive_failures: int = Field(3, ge=1, description="Failures before connects are refused")
    health_check_interval: float = Field(30.0, ge=0, description="0 disables periodic health checks")
    freshness_window: float = Field(60.0, gt=0, description="Max age of the last good health check")
    very_stale_threshold: float = Field(60.0, gt=0, description="Age that makes is_connected() re-check")
    recovery_interval: float = Field(60.0, ge=0, description="0 disables periodic failure recovery")
    cleanup_timeout: float = Field(5.0, gt=0, description="Bound on closing an old connection")
    primitives_ttl: float = Field(300.0, ge=0, description="Lifetime of cached primitives")
    log_level: str = Field("INFO", description="loguru level name")

    model_config = ConfigDict(frozen=True)


class SSEPluginConfig(BaseModel):
    connection_timeout: float = Field(5.0, gt=0)
    read_timeout: float = Field(300.0, gt=0, description="Idle time before the event stream is dropped")
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


class WebSocketPluginConfig(BaseModel):
    connection_timeout: float = Field(5.0, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class StreamableHttpPluginConfig(BaseModel):
    connection_timeout: float = Field(30.0, gt=0)
    read_timeout: float = Field(300.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    terminate_on_close: bool = True

    model_config = ConfigDict(frozen=True, extra="forbid")


PLUGIN_CONFIG_MODELS: dict[TransportType, type[BaseModel]] = {
    TransportType.SSE: SSEPluginConfig,
    TransportType.WEBSOCKET: WebSocketPluginConfig,
    TransportType.STREAMABLE_HTTP: StreamableHttpPluginConfig,
}


class ClientConfig(BaseModel):
    """Complete client configuration."""

    default_transport: TransportType = TransportType.SSE
    default_uri: str = DEFAULT_SSE_URI
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings, alias="global")
    plugins: dict[TransportType, dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def plugin_config(
        self, transport_type: TransportType, overrides: Optional[Mapping[str, Any]] = None
    ) -> dict[str, Any]:
        """Merge configured plugin settings with per-request overrides."""
        merged = dict(self.plugins.get(transport_type, {}))
        merged.update(overrides or {})
        return merged

    def default_request(self) -> ConnectionRequest:
        """Build the request for the configured default target."""
        return ConnectionRequest(
            uri=self.default_uri,
            transport_type=self.default_transport,
            plugin_config=self.plugins.get(self.default_transport, {}),
        )


def validate_plugin_config(transport_type: TransportType, config: Optional[Mapping[str, Any]]) -> BaseModel:
    """
    Validate raw plugin settings against the model for a transport.

    Raises:
        ConfigurationError: If the settings do not fit the model
    """
    model = PLUGIN_CONFIG_MODELS.get(transport_type)
    if model is None:
        raise ConfigurationError(f"No configuration model for transport '{transport_type.value}'")
    try:
        return model(**dict(config or {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {transport_type.value} plugin configuration: {e}", cause=e) from e


def default_uri_for(transport_type: TransportType) -> str:
    """Return the conventional local endpoint for a transport."""
    if transport_type == TransportType.WEBSOCKET:
        return DEFAULT_WEBSOCKET_URI
    if transport_type == TransportType.STREAMABLE_HTTP:
        return DEFAULT_STREAMABLE_HTTP_URI
    return DEFAULT_SSE_URI


def detect_transport_type(uri: str) -> TransportType:
    """Guess a transport from the URI scheme: ws/wss map to websocket, everything else to SSE."""
    scheme = uri.split(":", 1)[0].lower() if ":" in uri else ""
    if scheme in ("ws", "wss"):
        return TransportType.WEBSOCKET
    return TransportType.SSE


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    server_url = os.getenv("MCPLINK_SERVER_URL")
    transport = os.getenv("MCPLINK_TRANSPORT_TYPE")
    log_level = os.getenv("MCPLINK_LOG_LEVEL")

    if transport:
        data["default_transport"] = transport
    if server_url:
        data["default_uri"] = server_url
        if not transport:
            data["default_transport"] = detect_transport_type(server_url).value
    if log_level:
        data.setdefault("global", {})
        data["global"] = {**data["global"], "log_level": log_level}
    return data


def load_client_config(config_path: Optional[str | Path] = None, use_env: bool = True) -> ClientConfig:
    """
    Load client configuration from a JSON file.

    Args:
        config_path: Path to the JSON file. If None, ``config/mcplink.json``
            at the project root is used when it exists, defaults otherwise.
        use_env: Apply MCPLINK_* environment overrides (a ``.env`` file in
            the working directory is loaded first).

    Returns:
        ClientConfig: Parsed configuration

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    data: dict[str, Any] = {}

    if config_path is None:
        candidate = Path(get_project_root()) / "config" / "mcplink.json"
        path: Optional[Path] = candidate if candidate.exists() else None
    else:
        path = Path(config_path)
        if not path.exists():
            error_msg = f"Configuration file not found: {path}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

    if path is not None:
        logger.info(f"Loading client configuration from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in configuration file {path}: {e}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg, cause=e) from e

    if use_env:
        load_dotenv()
        data = _apply_env_overrides(data)

    try:
        config = ClientConfig(**data)
    except ValidationError as e:
        error_msg = f"Invalid configuration structure: {e}"
        logger.error(error_msg)
        raise ConfigurationError(error_msg, cause=e) from e

    for transport_type, settings in config.plugins.items():
        validate_plugin_config(transport_type, settings)

    logger.debug(
        f"Configuration loaded: default={config.default_transport.value} {config.default_uri}, "
        f"plugins={[t.value for t in config.plugins]}"
    )
    return config
