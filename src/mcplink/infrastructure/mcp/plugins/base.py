"""Shared machinery for plugins built on the MCP SDK client transports.

The SDK transports are async context managers backed by anyio task groups,
which must be entered and exited by the same task. Each handle therefore
owns a dedicated channel task: the task enters the transport and the
``ClientSession`` contexts, signals that the channel is open, then waits for
a stop signal. Closing the handle sets the signal and lets the task unwind
its own contexts.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, ClassVar, Mapping, Optional
from urllib.parse import urlparse

from mcp import types
from mcp.client.session import ClientSession
from pydantic import BaseModel

from mcplink import __version__
from mcplink.config import validate_plugin_config
from mcplink.domain.errors import (
    ConfigurationError,
    ErrorKind,
    ToolError,
    TransportError,
    TransportTimeoutError,
    categorize_error,
)
from mcplink.domain.protocols import ConnectionLostCallback, PluginMetadata
from mcplink.domain.types import Primitive, Prompt, Resource, Tool, TransportType
from mcplink.logger import get_logger

StreamsFactory = Callable[[str], AbstractAsyncContextManager[tuple[Any, ...]]]


class SessionTransportHandle:
    """Open channel to one server, owned by a background channel task."""

    def __init__(self, uri: str, transport_type: TransportType) -> None:
        self._uri = uri
        self.transport_type = transport_type
        self.session: Optional[ClientSession] = None
        self.capabilities: Optional[types.ServerCapabilities] = None
        self.server_info: Optional[types.Implementation] = None
        self.get_session_id: Optional[Callable[[], Optional[str]]] = None
        self._opened: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def is_closed(self) -> bool:
        """True once closed, or once the channel task has ended on its own."""
        return self._closed or self._task is None or self._task.done()

    @property
    def session_id(self) -> Optional[str]:
        return self.get_session_id() if self.get_session_id else None

    async def initialize(self) -> types.InitializeResult:
        """
        Perform the MCP handshake over the open channel.

        Raises:
            TransportError: If the channel is closed or the handshake fails
        """
        session = self.session
        if session is None or self.is_closed:
            raise TransportError(f"Channel to {self._uri} is not open")
        try:
            result = await session.initialize()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            kind = categorize_error(exc)
            if kind == ErrorKind.TIMEOUT:
                raise TransportTimeoutError(f"Handshake with {self._uri} timed out", cause=exc) from exc
            raise TransportError(f"Handshake with {self._uri} failed: {exc}", cause=exc) from exc
        self.capabilities = result.capabilities
        self.server_info = result.serverInfo
        return result

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<SessionTransportHandle {self.transport_type.value} {self._uri} {state}>"


class BaseSessionPlugin(ABC):
    """Transport plugin skeleton: subclasses only say how to open the streams."""

    metadata: ClassVar[PluginMetadata]
    supported_schemes: ClassVar[tuple[str, ...]] = ("http", "https")
    close_timeout: ClassVar[float] = 5.0
    probe_timeout: ClassVar[float] = 5.0

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        self.config: BaseModel = validate_plugin_config(self.metadata.transport_type, config)
        self._logger = get_logger(f"plugins.{self.metadata.transport_type.value}")
        self._on_connection_lost: Optional[ConnectionLostCallback] = None
        self._logger.debug(f"Initialized {self.metadata.name} with config: {self.config.model_dump()}")

    @property
    def transport_type(self) -> TransportType:
        return self.metadata.transport_type

    @property
    def open_timeout(self) -> Optional[float]:
        """Bound on opening the channel, None when the transport bounds itself."""
        return None

    @abstractmethod
    def _open_streams(self, uri: str) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        """Return the SDK transport context manager for a URI."""

    def _describe_failure(self, message: str) -> str:
        """Turn a raw open failure into a message that points at the likely cause."""
        lowered = message.lower()
        if "404" in lowered:
            return f"endpoint not found (404). Verify the server URL and endpoint path. ({message})"
        if "timeout" in lowered or "timed out" in lowered:
            return f"connection timeout. The server may be slow or unreachable. ({message})"
        if "connect" in lowered or "refused" in lowered:
            return f"connection failed. Check if the server is running and accessible. ({message})"
        return message

    # ------------------------------------------------------------------ #
    # Contract
    # ------------------------------------------------------------------ #

    def is_supported(self, uri: str) -> bool:
        try:
            parsed = urlparse(uri)
        except ValueError:
            return False
        return parsed.scheme in self.supported_schemes and bool(parsed.netloc)

    async def connect(self, uri: str) -> SessionTransportHandle:
        """
        Open a channel to the server without performing the handshake.

        Raises:
            ConfigurationError: If the URI is not usable with this transport
            TransportError: If the channel cannot be opened
        """
        if not self.is_supported(uri):
            raise ConfigurationError(
                f"{self.metadata.name} does not support URI '{uri}' "
                f"(expected one of: {', '.join(s + '://' for s in self.supported_schemes)})"
            )

        self._logger.debug(f"Opening {self.transport_type.value} channel to {uri}")
        handle = SessionTransportHandle(uri, self.transport_type)
        handle._task = asyncio.create_task(
            self._run_channel(handle), name=f"mcplink-{self.transport_type.value}-channel"
        )

        try:
            if self.open_timeout is not None:
                await asyncio.wait_for(asyncio.shield(handle._opened), timeout=self.open_timeout)
            else:
                await asyncio.shield(handle._opened)
        except asyncio.TimeoutError as exc:
            await self.disconnect(handle)
            raise TransportTimeoutError(
                f"{self.metadata.name}: connection timeout after {self.open_timeout:.1f}s opening {uri}",
                cause=exc,
            ) from exc
        except asyncio.CancelledError:
            await self.disconnect(handle)
            raise
        except Exception as exc:
            await self.disconnect(handle)
            if categorize_error(exc) == ErrorKind.TIMEOUT:
                raise TransportTimeoutError(
                    f"{self.metadata.name}: {self._describe_failure(str(exc))}", cause=exc
                ) from exc
            raise TransportError(
                f"{self.metadata.name}: {self._describe_failure(str(exc) or type(exc).__name__)}",
                cause=exc,
            ) from exc

        self._logger.info(f"Channel open to {uri}")
        return handle

    async def call_tool(
        self, handle: SessionTransportHandle, name: str, arguments: dict[str, Any]
    ) -> types.CallToolResult:
        session = self._require_session(handle)
        self._logger.debug(f"Calling tool: {name}")
        try:
            result = await session.call_tool(name, arguments)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self._translate(exc, f"call tool '{name}'") from exc

        if result.isError:
            raise ToolError(f"Tool '{name}' reported an error: {_result_text(result)}", result=result)

        self._logger.debug(f"Tool call completed: {name}")
        return result

    async def get_primitives(self, handle: SessionTransportHandle) -> list[Primitive]:
        session = self._require_session(handle)
        capabilities = handle.capabilities
        primitives: list[Primitive] = []

        try:
            if capabilities is None or capabilities.resources is not None:
                primitives.extend(await self._list_resources(session, optional=capabilities is None))
            if capabilities is None or capabilities.tools is not None:
                primitives.extend(await self._list_tools(session, optional=capabilities is None))
            if capabilities is None or capabilities.prompts is not None:
                primitives.extend(await self._list_prompts(session, optional=capabilities is None))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self._translate(exc, "list primitives") from exc

        self._logger.debug(f"Retrieved {len(primitives)} primitives")
        return primitives

    async def is_healthy(self, handle: SessionTransportHandle) -> bool:
        session = handle.session
        if session is None or handle.is_closed:
            return False
        try:
            await asyncio.wait_for(session.send_ping(), timeout=self.probe_timeout)
            return True
        except asyncio.TimeoutError:
            self._logger.warning(f"Ping timed out after {self.probe_timeout}s")
            return False
        except Exception as e:
            self._logger.warning(f"Ping failed: {e}")
            return False

    async def probe_listing(self, handle: SessionTransportHandle) -> bool:
        """Second probe: a real listing request the server must answer."""
        session = handle.session
        if session is None or handle.is_closed:
            return False
        capabilities = handle.capabilities
        try:
            if capabilities is not None and capabilities.resources is not None:
                await asyncio.wait_for(session.list_resources(), timeout=self.probe_timeout)
            else:
                await asyncio.wait_for(session.list_tools(), timeout=self.probe_timeout)
            return True
        except asyncio.TimeoutError:
            self._logger.warning(f"Listing probe timed out after {self.probe_timeout}s")
            return False
        except Exception as e:
            self._logger.warning(f"Listing probe failed: {e}")
            return False

    async def disconnect(self, handle: Optional[SessionTransportHandle]) -> None:
        """Close the channel. Safe to call any number of times."""
        if handle is None or handle._closed:
            return
        handle._closed = True
        handle._stop_event.set()

        task = handle._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.close_timeout)
            except asyncio.TimeoutError:
                self._logger.warning(f"Channel to {handle.uri} did not close within {self.close_timeout}s, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        handle.session = None
        self._logger.debug(f"Channel to {handle.uri} closed")

    def set_connection_lost_callback(self, callback: Optional[ConnectionLostCallback]) -> None:
        self._on_connection_lost = callback

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _run_channel(self, handle: SessionTransportHandle) -> None:
        """Own the transport and session contexts for the life of the handle."""
        reason = "channel closed by server"
        try:
            async with self._open_streams(handle.uri) as streams:
                read_stream, write_stream = streams[0], streams[1]
                if len(streams) > 2:
                    handle.get_session_id = streams[2]
                async with ClientSession(
                    read_stream,
                    write_stream,
                    logging_callback=self._log_server_message,
                    client_info=types.Implementation(name="mcplink", version=__version__),
                ) as session:
                    handle.session = session
                    if not handle._opened.done():
                        handle._opened.set_result(None)
                    await handle._stop_event.wait()
        except asyncio.CancelledError:
            reason = "channel task cancelled"
            if not handle._opened.done():
                handle._opened.cancel()
            raise
        except Exception as exc:
            if not handle._opened.done():
                handle._opened.set_exception(exc)
                return
            reason = f"channel failed: {exc}"
            self._logger.warning(f"Channel to {handle.uri} failed: {exc}")
        finally:
            handle.session = None
            lost = handle._opened.done() and not handle._opened.cancelled() and handle._opened.exception() is None
            if lost and not handle._stop_event.is_set():
                self._notify_connection_lost(handle, reason)

        if not handle._opened.done():
            handle._opened.set_exception(TransportError(f"Channel to {handle.uri} closed before opening"))

    def _notify_connection_lost(self, handle: SessionTransportHandle, reason: str) -> None:
        self._logger.warning(f"Connection to {handle.uri} lost: {reason}")
        if self._on_connection_lost is None:
            return
        try:
            self._on_connection_lost(handle, reason)
        except Exception as e:
            self._logger.error(f"Error in connection lost callback: {e}")

    async def _log_server_message(self, params: types.LoggingMessageNotificationParams) -> None:
        self._logger.debug(f"Server log [{params.level}]: {params.data}")

    def _require_session(self, handle: SessionTransportHandle) -> ClientSession:
        session = handle.session
        if session is None or handle.is_closed:
            raise TransportError(f"{self.metadata.name}: not connected")
        return session

    def _translate(self, exc: Exception, action: str) -> Exception:
        kind = categorize_error(exc)
        message = f"Failed to {action}: {exc}"
        if kind == ErrorKind.TOOL:
            return ToolError(message, cause=exc)
        if kind == ErrorKind.TIMEOUT:
            return TransportTimeoutError(message, cause=exc)
        if kind == ErrorKind.CONFIGURATION:
            return ConfigurationError(message, cause=exc)
        return TransportError(message, cause=exc)

    async def _list_tools(self, session: ClientSession, optional: bool) -> list[Primitive]:
        tools: list[Primitive] = []
        for item in await self._paginate(session.list_tools, "tools", optional):
            tools.append(Tool(name=item.name, description=item.description, input_schema=dict(item.inputSchema or {})))
        return tools

    async def _list_resources(self, session: ClientSession, optional: bool) -> list[Primitive]:
        resources: list[Primitive] = []
        for item in await self._paginate(session.list_resources, "resources", optional):
            resources.append(
                Resource(name=item.name, uri=str(item.uri), description=item.description, mime_type=item.mimeType)
            )
        return resources

    async def _list_prompts(self, session: ClientSession, optional: bool) -> list[Primitive]:
        prompts: list[Primitive] = []
        for item in await self._paginate(session.list_prompts, "prompts", optional):
            arguments = tuple(arg.model_dump(exclude_none=True) for arg in (item.arguments or []))
            prompts.append(Prompt(name=item.name, description=item.description, arguments=arguments))
        return prompts

    async def _paginate(self, list_fn: Callable[..., Any], attribute: str, optional: bool) -> list[Any]:
        """Collect every page of a listing. Optional listings tolerate method-not-found."""
        items: list[Any] = []
        cursor: Optional[str] = None
        while True:
            try:
                result = await list_fn(cursor=cursor)
            except Exception as exc:
                if optional and categorize_error(exc) == ErrorKind.TOOL:
                    self._logger.debug(f"Server does not list {attribute}: {exc}")
                    return items
                raise
            items.extend(getattr(result, attribute, None) or [])
            cursor = getattr(result, "nextCursor", None)
            if not cursor:
                return items


def _result_text(result: types.CallToolResult) -> str:
    texts = [content.text for content in result.content if isinstance(content, types.TextContent)]
    return " ".join(texts) if texts else "no details"
