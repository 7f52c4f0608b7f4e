"""Connection manager: one logical connection to an MCP server.

The manager owns the state machine, the failure record, the primitives
cache and the health and recovery loops. All transport work is delegated to
the plugin selected by the ConnectionRequest.

    DISCONNECTED --connect()--> CONNECTING --success--> CONNECTED
    CONNECTING --failure--> DISCONNECTED (consecutive failures += 1)
    CONNECTED --health failure--> DEGRADED --health failure--> DISCONNECTED
    DEGRADED --health success--> CONNECTED
    DISCONNECTED --connect() while locked out--> PERMANENTLY_FAILED
    PERMANENTLY_FAILED --recovery tick / reset / force_reconnect--> DISCONNECTED
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from mcplink.config import ClientConfig, detect_transport_type
from mcplink.domain.errors import (
    ConfigurationError,
    ConnectionSupersededError,
    ErrorKind,
    McpLinkError,
    ToolError,
    TransportError,
    categorize_error,
    is_transport_shaped,
)
from mcplink.domain.events import (
    Connected,
    Connecting,
    Disconnected,
    EventBus,
    FailureRecordChanged,
    HealthCheckResult,
    ToolCallCompleted,
    ToolCallFailed,
    ToolCallStarted,
    ToolsListUpdated,
)
from mcplink.domain.protocols import (
    SupportsConnectionLossCallback,
    SupportsListingProbe,
    TransportHandle,
    TransportPlugin,
)
from mcplink.domain.types import (
    ConnectionRequest,
    ConnectionState,
    FailureRecord,
    PrimitivesSnapshot,
    ToolCallOutcome,
    TransportType,
)
from mcplink.infrastructure.cache import PrimitivesCache
from mcplink.infrastructure.mcp.registry import PluginRegistry
from mcplink.logger import get_logger
from mcplink.utils import run_with_timeout

from .failures import FailureTracker
from .health import HealthChecker
from .lifecycle import ConnectionLifecycle

logger = get_logger("connection.manager")


@dataclass(frozen=True)
class PluginHandle:
    """The live plugin instance together with the channel it opened."""

    plugin: TransportPlugin
    handle: TransportHandle
    request: ConnectionRequest


@dataclass
class _Attempt:
    request: ConnectionRequest
    generation: int
    task: asyncio.Task[None]


class ConnectionManager:
    """
    Keeps a single connection to an MCP server usable for concurrent callers.

    Concurrent ``connect`` calls for the same target share one attempt.
    Failures are counted; after ``max_consecutive_failures`` in a row new
    attempts are refused until the periodic recovery routine (or an explicit
    reset) lifts the lockout. Tool-shaped failures never touch the
    connection; transport-shaped failures tear it down at once.

    Use as an async context manager, or call ``init()`` and ``shutdown()``.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        registry: Optional[PluginRegistry] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
    ):
        """
        Initialize connection manager.

        Args:
            config: Client configuration (defaults apply when None)
            registry: Plugin registry; a fresh one loading the bundled plugins when None
            event_bus: Bus receiving lifecycle events; a private one when None
            clock: Monotonic clock used for freshness and cache expiry
            on_state_change: Optional callback invoked with every new state
        """
        self._config = config or ClientConfig()
        self._settings = self._config.global_settings
        self._event_bus = event_bus or EventBus()
        self._registry = registry or PluginRegistry(self._event_bus)
        self._clock = clock

        self._lifecycle = ConnectionLifecycle(self._event_bus, on_state_change)
        self._failures = FailureTracker(
            self._settings.max_consecutive_failures, on_change=self._on_failure_record_changed
        )
        self._cache = PrimitivesCache(ttl=self._settings.primitives_ttl, clock=clock)
        self._health_checker = HealthChecker(check_interval=self._settings.health_check_interval)

        self._request: Optional[ConnectionRequest] = None
        self._active: Optional[PluginHandle] = None
        self._pending: Optional[_Attempt] = None
        self._generation = 0
        self._last_health_ok: Optional[float] = None

        self._cleanup_tasks: set[asyncio.Task[None]] = set()
        self._recovery_task: Optional[asyncio.Task[None]] = None
        self._background_check: Optional[asyncio.Task[None]] = None
        self._initialized = False
        self._closed = False

    async def __aenter__(self) -> "ConnectionManager":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ConnectionState:
        return self._lifecycle.state

    @property
    def failure_record(self) -> FailureRecord:
        return self._failures.record

    @property
    def current_request(self) -> Optional[ConnectionRequest]:
        """The most recently requested target, connected or not."""
        return self._request

    @property
    def transport_type(self) -> Optional[TransportType]:
        return self._request.transport_type if self._request else None

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def config(self) -> ClientConfig:
        return self._config

    def available_transports(self) -> list[TransportType]:
        return self._registry.list_available()

    def connection_info(self) -> dict[str, Any]:
        """Debug snapshot of the connection and its bookkeeping."""
        record = self._failures.record
        active = self._active
        last_check_age = None
        if self._last_health_ok is not None:
            last_check_age = self._clock() - self._last_health_ok
        return {
            "state": self.state.value,
            "uri": self._request.uri if self._request else None,
            "transport_type": self.transport_type.value if self.transport_type else None,
            "connected_uri": active.request.uri if active else None,
            "consecutive_failures": record.consecutive_failures,
            "max_consecutive_failures": self._failures.max_consecutive_failures,
            "last_error": record.last_error,
            "last_error_at": record.last_error_at,
            "last_health_check_age": last_check_age,
            "connection_in_progress": self._pending is not None,
            "health_monitoring": self._health_checker.is_running,
            "primitives_cached": self._cache.is_fresh,
            "available_transports": [t.value for t in self.available_transports()],
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def init(self) -> None:
        """Load the default plugins if needed and start the recovery loop."""
        self._ensure_open()
        if self._initialized:
            return

        if not self._registry.list_available():
            self._registry.load_default_plugins()

        if self._settings.recovery_interval > 0:
            self._recovery_task = asyncio.create_task(self._recovery_loop(), name="mcplink-recovery")
        self._initialized = True
        logger.info(
            f"Connection manager initialized (transports={[t.value for t in self.available_transports()]})"
        )

    async def shutdown(self) -> None:
        """Cancel every background task and close the connection."""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down connection manager")

        for task in (self._recovery_task, self._background_check):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._recovery_task = None
        self._background_check = None

        pending = self._supersede_pending()
        if pending is not None:
            await asyncio.wait({pending.task}, timeout=self._settings.cleanup_timeout)

        await self._health_checker.stop()
        if self._active is not None:
            self._detach(None)
        await self._await_cleanup()
        logger.info("Connection manager shut down")

    # ------------------------------------------------------------------ #
    # Connection control
    # ------------------------------------------------------------------ #

    async def connect(self, request: ConnectionRequest) -> None:
        """
        Connect to the target described by ``request``.

        Returns at once when already connected to that target, and joins
        the attempt in flight when one exists for it. Any connection to a
        different target is torn down first.

        Raises:
            ConfigurationError: If no plugin fits the request
            TransportError: If the attempt fails or connects are locked out
            ConnectionSupersededError: If a newer request replaced this one
        """
        self._ensure_open()
        await self.init()

        if self._is_live_for(request):
            logger.debug(f"Already connected to {request.uri}")
            return

        attempt = self._pending
        if attempt is not None and attempt.request.target == request.target:
            logger.info(f"Joining connection attempt in progress to {request.uri}")
        else:
            attempt = self._start_attempt(request)

        await self._await_attempt(attempt)

    async def ensure_connection(self) -> PluginHandle:
        """
        Return a live plugin handle, reconnecting when the connection is stale.

        Raises:
            ConfigurationError: If no target was ever requested
            TransportError: If reconnecting fails
        """
        self._ensure_open()
        active = self._active
        if active is not None and self.state == ConnectionState.CONNECTED and self._is_fresh():
            return active

        if self._pending is not None:
            await self._await_attempt(self._pending)
        else:
            request = self._request
            if request is None:
                raise ConfigurationError("No server target set, call connect() first")

            if self._active is not None:
                logger.info(f"Connection to {request.uri} is {self.state.value} or stale, reconnecting")
                self._detach("Connection stale, reconnecting")
                await self._await_cleanup()
            await self.connect(request)

        if self._active is None:
            raise TransportError("Connection unavailable")
        return self._active

    async def disconnect(self) -> None:
        """Close the connection and cancel any attempt in flight."""
        self._supersede_pending()
        if self._active is None:
            if self.state == ConnectionState.CONNECTING:
                self._lifecycle.set_state(ConnectionState.DISCONNECTED)
            logger.debug("Disconnect requested while not connected")
        else:
            logger.info(f"Disconnecting from {self._active.request.uri}")
            self._detach(None)
        await self._await_cleanup()

    async def force_reconnect(self, uri: Optional[str] = None) -> None:
        """
        Forget past failures and connect again, optionally to a new URI.

        The old connection is closed in the background; the new attempt waits
        at most ``cleanup_timeout`` for that close before opening its channel.

        Raises:
            ConfigurationError: If there is no URI to connect to
            TransportError: If the new attempt fails
        """
        self._ensure_open()
        await self.init()
        logger.info("Force reconnect requested")

        self._failures.reset()
        request = self._request
        if uri:
            uri = uri.strip()
            if request is not None:
                request = request.model_copy(update={"uri": uri})
            else:
                request = ConnectionRequest(uri=uri, transport_type=detect_transport_type(uri))
        if request is None:
            raise ConfigurationError("No server URL available for reconnection")

        self._cache.invalidate()
        if self._active is not None:
            self._detach("Reconnect requested")
        if self.state == ConnectionState.PERMANENTLY_FAILED:
            self._lifecycle.set_state(ConnectionState.DISCONNECTED)

        attempt = self._start_attempt(request)
        await self._await_attempt(attempt)

    def is_connected(self) -> bool:
        """
        Non-blocking connection check.

        When the last successful health check is older than the very-stale
        threshold, a health check is scheduled in the background; its result
        shows up in later calls.
        """
        connected = self._active is not None and self.state in (
            ConnectionState.CONNECTED,
            ConnectionState.DEGRADED,
        )
        if connected and self._is_very_stale():
            self._schedule_background_check()
        return connected

    def reset_failure_state(self) -> None:
        """Clear the failure record entirely and lift any lockout."""
        self._failures.reset()
        if self.state == ConnectionState.PERMANENTLY_FAILED:
            self._lifecycle.set_state(ConnectionState.DISCONNECTED)

    def reset_for_recovery(self) -> None:
        """Relax the failure record by one step and lift the lockout once below the threshold."""
        self._failures.relax()
        if self.state == ConnectionState.PERMANENTLY_FAILED and not self._failures.is_locked_out:
            logger.info("Lifting connection lockout")
            self._lifecycle.set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolCallOutcome:
        """
        Call a tool on the server.

        Tool and transport failures come back as a failed outcome tagged with
        the error kind. Transport-shaped failures also drop the connection.

        Raises:
            ConfigurationError: If the name or arguments are malformed, or no
                target was ever requested
        """
        self._ensure_open()
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Tool name must be a non-empty string")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping) or not all(isinstance(key, str) for key in arguments):
            raise ConfigurationError("Tool arguments must be a mapping with string keys")
        args = dict(arguments)

        transport_type = self.transport_type
        self._event_bus.publish(ToolCallStarted(tool_name=name, arguments=args, transport_type=transport_type))
        started = self._clock()

        try:
            active = await self.ensure_connection()
        except TransportError as e:
            return self._tool_call_failed(name, e.kind, e.message, started, transport_type)

        transport_type = active.request.transport_type
        try:
            result = await run_with_timeout(
                active.plugin.call_tool(active.handle, name, args),
                self._settings.operation_timeout,
                f"Tool call '{name}'",
            )
        except ToolError as e:
            logger.warning(f"Tool '{name}' failed: {e.message}")
            return self._tool_call_failed(name, ErrorKind.TOOL, e.message, started, transport_type, e.result)
        except ConfigurationError:
            raise
        except Exception as e:
            kind = categorize_error(e)
            message = e.message if isinstance(e, McpLinkError) else str(e) or type(e).__name__
            if is_transport_shaped(kind):
                logger.error(f"Transport failure during tool call '{name}': {message}")
                self._connection_lost(f"Connection lost during tool call: {message}", active.handle)
            else:
                logger.warning(f"Tool '{name}' failed: {message}")
            return self._tool_call_failed(name, kind, message, started, transport_type)

        if self._active is active:
            self._last_health_ok = self._clock()
        duration = self._clock() - started
        self._event_bus.publish(ToolCallCompleted(tool_name=name, duration=duration, transport_type=transport_type))
        logger.debug(f"Tool '{name}' completed in {duration:.2f}s")
        return ToolCallOutcome.success(result)

    async def get_primitives(self, force_refresh: bool = False) -> PrimitivesSnapshot:
        """
        Return the tools, resources and prompts of the server.

        Served from cache within the TTL unless ``force_refresh`` is set.

        Raises:
            ConfigurationError: If no target was ever requested
            TransportError: If the listing fails at the transport level
            ToolError: If the server rejects the listing
        """
        self._ensure_open()
        cached = self._cache.get(force_refresh)
        if cached is not None:
            logger.debug("Returning cached primitives")
            return cached

        active = await self.ensure_connection()
        try:
            primitives = await run_with_timeout(
                active.plugin.get_primitives(active.handle),
                self._settings.operation_timeout,
                "Listing primitives",
            )
        except (ToolError, ConfigurationError):
            raise
        except Exception as e:
            kind = categorize_error(e)
            if not is_transport_shaped(kind):
                raise ToolError(f"Failed to list primitives: {e}", cause=e) from e
            self._connection_lost(f"Connection lost while listing primitives: {e}", active.handle)
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Failed to list primitives: {e}", cause=e) from e

        snapshot = PrimitivesSnapshot(primitives=tuple(primitives), fetched_at=time.time())
        if self._active is active:
            self._cache.store(snapshot)
            self._last_health_ok = self._clock()
        self._event_bus.publish(
            ToolsListUpdated(tools=snapshot.tools, transport_type=active.request.transport_type)
        )
        logger.info(
            f"Fetched {len(snapshot.tools)} tools, {len(snapshot.resources)} resources, "
            f"{len(snapshot.prompts)} prompts"
        )
        return snapshot

    # ------------------------------------------------------------------ #
    # Connection attempts
    # ------------------------------------------------------------------ #

    def _start_attempt(self, request: ConnectionRequest) -> _Attempt:
        if self._failures.is_locked_out:
            record = self._failures.record
            message = (
                f"Connection permanently failed after {record.consecutive_failures} consecutive attempts. "
                f"Last error: {record.last_error}"
            )
            self._lifecycle.set_state(
                ConnectionState.PERMANENTLY_FAILED, message, transport_type=request.transport_type
            )
            logger.warning(message)
            raise TransportError(message)

        previous = self._supersede_pending()
        self._generation += 1
        self._request = request
        task = asyncio.create_task(
            self._run_attempt(request, self._generation, previous.task if previous else None),
            name=f"mcplink-connect-{self._generation}",
        )
        attempt = _Attempt(request=request, generation=self._generation, task=task)
        task.add_done_callback(lambda t: self._attempt_done(attempt))
        self._pending = attempt
        return attempt

    def _attempt_done(self, attempt: _Attempt) -> None:
        if self._pending is attempt:
            self._pending = None
        # Mark the outcome as retrieved; awaiters see it through shield().
        if not attempt.task.cancelled():
            attempt.task.exception()

    async def _await_attempt(self, attempt: _Attempt) -> None:
        """
        Wait for a shared attempt without letting the caller cancel it.

        An attempt cancelled before its first step never reaches its own
        handler, so the cancellation is reported here as a supersede unless
        the awaiting task is itself being cancelled.
        """
        try:
            await asyncio.shield(attempt.task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if attempt.task.cancelled() and (current is None or current.cancelling() == 0):
                raise ConnectionSupersededError(
                    f"Connection attempt to {attempt.request.uri} was superseded"
                ) from None
            raise

    def _supersede_pending(self) -> Optional[_Attempt]:
        """Invalidate the attempt in flight, if any, and return it."""
        attempt = self._pending
        if attempt is None:
            return None
        self._pending = None
        self._generation += 1
        logger.info(f"Superseding connection attempt to {attempt.request.uri}")
        attempt.task.cancel()
        return attempt

    def _check_current(self, generation: int, uri: str) -> None:
        if generation != self._generation:
            raise ConnectionSupersededError(f"Connection attempt to {uri} was superseded")

    async def _run_attempt(
        self, request: ConnectionRequest, generation: int, previous: Optional[asyncio.Task[None]]
    ) -> None:
        transport_type = request.transport_type
        try:
            if previous is not None:
                await asyncio.wait({previous}, timeout=self._settings.cleanup_timeout)
            if self._active is not None:
                self._detach(None)
            await self._await_cleanup()
            self._check_current(generation, request.uri)

            self._lifecycle.set_state(ConnectionState.CONNECTING, transport_type=transport_type)
            self._event_bus.publish(Connecting(uri=request.uri, transport_type=transport_type))
            logger.info(f"Connecting to {request.uri} via {transport_type.value}")

            plugin = self._registry.get_initialized_plugin(
                transport_type, self._config.plugin_config(transport_type, request.plugin_config)
            )
            if not plugin.is_supported(request.uri):
                raise ConfigurationError(
                    f"Transport '{transport_type.value}' does not support URI '{request.uri}'"
                )

            handle = await run_with_timeout(
                plugin.connect(request.uri),
                self._settings.operation_timeout,
                f"Connecting to {request.uri}",
            )
            try:
                self._check_current(generation, request.uri)
                await run_with_timeout(
                    handle.initialize(), self._settings.operation_timeout, "Session initialization"
                )
                self._check_current(generation, request.uri)
            except BaseException:
                await self._close_handle(plugin, handle)
                raise

            self._commit(PluginHandle(plugin=plugin, handle=handle, request=request))
        except ConnectionSupersededError:
            raise
        except asyncio.CancelledError:
            if generation != self._generation:
                raise ConnectionSupersededError(f"Connection attempt to {request.uri} was superseded") from None
            raise
        except ConfigurationError as e:
            logger.error(f"Invalid connection request: {e.message}")
            if generation == self._generation:
                self._lifecycle.set_state(ConnectionState.DISCONNECTED, e.message, transport_type)
            raise
        except Exception as e:
            if generation != self._generation:
                raise ConnectionSupersededError(f"Connection attempt to {request.uri} was superseded") from e
            error = e if isinstance(e, TransportError) else TransportError(f"Connection failed: {e}", cause=e)
            record = self._failures.record_failure(error.message)
            logger.error(
                f"Connection attempt {record.consecutive_failures}/{self._failures.max_consecutive_failures} "
                f"to {request.uri} failed: {error.message}"
            )
            self._lifecycle.set_state(ConnectionState.DISCONNECTED, error.message, transport_type)
            self._event_bus.publish(Disconnected(transport_type=transport_type, error=error.message))
            if error is e:
                raise
            raise error from e

    def _commit(self, active: PluginHandle) -> None:
        transport_type = active.request.transport_type
        self._active = active
        self._last_health_ok = self._clock()
        self._cache.invalidate()
        self._failures.record_success()

        if isinstance(active.plugin, SupportsConnectionLossCallback):
            active.plugin.set_connection_lost_callback(self._on_channel_lost)

        self._lifecycle.set_state(ConnectionState.CONNECTED, transport_type=transport_type)
        self._event_bus.publish(Connected(uri=active.request.uri, transport_type=transport_type))
        logger.info(f"Connected to {active.request.uri} via {transport_type.value}")

        self._health_checker.start(
            probe=lambda: self._probe(active),
            on_result=lambda healthy: self._on_health_result(active, healthy),
        )

    def _is_live_for(self, request: ConnectionRequest) -> bool:
        return (
            self._active is not None
            and self.state == ConnectionState.CONNECTED
            and self._active.request.target == request.target
        )

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    def _detach(self, error: Optional[str]) -> None:
        """Forget the active connection and close it in the background."""
        active = self._active
        if active is None:
            return
        self._active = None
        self._last_health_ok = None
        self._cache.invalidate()
        self._health_checker.cancel()

        cleanup = asyncio.create_task(self._close_handle(active.plugin, active.handle))
        self._cleanup_tasks.add(cleanup)
        cleanup.add_done_callback(self._cleanup_tasks.discard)

        transport_type = active.request.transport_type
        self._lifecycle.set_state(ConnectionState.DISCONNECTED, error, transport_type)
        self._event_bus.publish(Disconnected(transport_type=transport_type, error=error))

    def _connection_lost(self, reason: str, handle: Any) -> None:
        active = self._active
        if active is None or active.handle is not handle:
            return
        logger.warning(reason)
        self._detach(reason)

    def _on_channel_lost(self, handle: Any, reason: str) -> None:
        self._connection_lost(f"Connection lost: {reason}", handle)

    async def _close_handle(self, plugin: TransportPlugin, handle: TransportHandle) -> None:
        try:
            await asyncio.wait_for(plugin.disconnect(handle), timeout=self._settings.cleanup_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Closing connection to {handle.uri} timed out after {self._settings.cleanup_timeout}s, proceeding"
            )
        except Exception as e:
            logger.warning(f"Error closing connection to {handle.uri}: {e}")

    async def _await_cleanup(self) -> None:
        if not self._cleanup_tasks:
            return
        _, still_running = await asyncio.wait(set(self._cleanup_tasks), timeout=self._settings.cleanup_timeout)
        if still_running:
            logger.warning(f"{len(still_running)} connection cleanup(s) still running, proceeding")

    # ------------------------------------------------------------------ #
    # Health and recovery
    # ------------------------------------------------------------------ #

    def _is_fresh(self) -> bool:
        if self._last_health_ok is None:
            return False
        return self._clock() - self._last_health_ok < self._settings.freshness_window

    def _is_very_stale(self) -> bool:
        if self._last_health_ok is None:
            return False
        return self._clock() - self._last_health_ok > self._settings.very_stale_threshold

    def _schedule_background_check(self) -> None:
        if self._background_check is not None and not self._background_check.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        active = self._active
        if active is None:
            return
        logger.debug("Connection check is stale, scheduling background health check")
        self._background_check = loop.create_task(self._background_health_check(active))

    async def _background_health_check(self, active: PluginHandle) -> None:
        healthy = await self._probe(active)
        self._on_health_result(active, healthy)

    async def _probe(self, active: PluginHandle) -> bool:
        timeout = self._settings.operation_timeout
        try:
            healthy = await asyncio.wait_for(active.plugin.is_healthy(active.handle), timeout=timeout)
            if healthy and isinstance(active.plugin, SupportsListingProbe):
                healthy = await asyncio.wait_for(active.plugin.probe_listing(active.handle), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Health probe timed out after {timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Health probe failed: {e}")
            return False
        return bool(healthy)

    def _on_health_result(self, active: PluginHandle, healthy: bool) -> bool:
        """Apply a probe result. Returns False once the watched connection is gone."""
        if self._active is not active:
            return False

        transport_type = active.request.transport_type
        self._event_bus.publish(HealthCheckResult(healthy=healthy, transport_type=transport_type))

        if healthy:
            self._last_health_ok = self._clock()
            if self.state == ConnectionState.DEGRADED:
                logger.info("Health check passed, connection recovered")
                self._lifecycle.set_state(ConnectionState.CONNECTED, transport_type=transport_type)
            return True

        if self.state == ConnectionState.CONNECTED:
            logger.warning("Health check failed, connection degraded")
            self._lifecycle.set_state(ConnectionState.DEGRADED, "Health check failed", transport_type)
            return True

        self._connection_lost("Health check failed twice in a row", active.handle)
        return False

    async def _recovery_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._settings.recovery_interval)
                self.reset_for_recovery()
        except asyncio.CancelledError:
            logger.debug("Recovery loop cancelled")
            raise

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _tool_call_failed(
        self,
        name: str,
        kind: ErrorKind,
        message: str,
        started: float,
        transport_type: Optional[TransportType],
        result: Any = None,
    ) -> ToolCallOutcome:
        self._event_bus.publish(
            ToolCallFailed(
                tool_name=name,
                error_kind=kind,
                message=message,
                duration=self._clock() - started,
                transport_type=transport_type,
            )
        )
        return ToolCallOutcome.failure(kind, message, result)

    def _on_failure_record_changed(self, record: FailureRecord) -> None:
        self._event_bus.publish(FailureRecordChanged(record=record))

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConfigurationError("Connection manager has been shut down")
