"""Error taxonomy and the failure categorization policy.

Every failure the manager sees is sorted into one of two families:

* tool-shaped: the server is reachable but rejected this particular call
  (unknown tool, invalid arguments, JSON-RPC invalid-request or
  method-not-found). These never change the connection state.
* connection-shaped: the channel itself is unusable (refused, timeout,
  name resolution, network or transport failure). These mark the
  connection as lost and count towards the failure record.

Typed exceptions are inspected first. Message patterns are the fallback for
errors raised as plain exceptions by third-party code. Anything that matches
neither family is treated as tool-shaped so that a one-off tool failure never
tears down a healthy connection.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from typing import Any

import anyio
import httpx
from mcp.shared.exceptions import McpError
from mcp.types import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND

__all__ = [
    "ErrorKind",
    "McpLinkError",
    "TransportError",
    "TransportTimeoutError",
    "ConnectionSupersededError",
    "ToolError",
    "ConfigurationError",
    "categorize_error",
    "is_transport_shaped",
    "TOOL_ERROR_PATTERNS",
    "CONNECTION_ERROR_PATTERNS",
]


class ErrorKind(Enum):
    """Category of a failure, used to branch without matching messages."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    TOOL = "tool"
    CONFIGURATION = "configuration"


class McpLinkError(Exception):
    """Base exception for all mcplink errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class TransportError(McpLinkError):
    """The channel to the server failed (refused, dropped, unreachable)."""

    kind = ErrorKind.TRANSPORT


class TransportTimeoutError(TransportError):
    """A transport operation did not finish within its time bound."""

    kind = ErrorKind.TIMEOUT


class ConnectionSupersededError(TransportError):
    """A connection attempt was replaced by a newer one before it committed."""


class ToolError(McpLinkError):
    """The server rejected a tool call (unknown tool, invalid arguments).

    Attributes:
        result: The raw tool result when the server reported the failure
            as an ``isError`` result instead of a protocol error.
    """

    kind = ErrorKind.TOOL

    def __init__(self, message: str, cause: BaseException | None = None, result: Any = None):
        super().__init__(message, cause)
        self.result = result


class ConfigurationError(McpLinkError):
    """Caller supplied an unusable request: malformed URI, bad plugin config."""

    kind = ErrorKind.CONFIGURATION


TOOL_ERROR_CODES = frozenset({INVALID_REQUEST, METHOD_NOT_FOUND, INVALID_PARAMS})

TOOL_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"tool .* not found",
        r"tool not found",
        r"unknown tool",
        r"method not found",
        r"invalid arguments",
        r"invalid parameters",
        r"invalid params",
        r"mcp error -32602",
        r"mcp error -32601",
        r"mcp error -32600",
        r"tool '[^']+' is not available",
        r"tool '[^']+' not found on server",
    )
)

CONNECTION_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"connection refused",
        r"econnrefused",
        r"timeout",
        r"timed out",
        r"etimedout",
        r"enotfound",
        r"name or service not known",
        r"network error",
        r"server unavailable",
        r"could not connect",
        r"connection failed",
        r"connection closed",
        r"connection reset",
        r"transport error",
        r"socket error",
        r"sse error",
        r"fetch failed",
        r"failed to fetch",
    )
)

_TRANSPORT_EXCEPTION_TYPES: tuple[type[BaseException], ...] = (
    OSError,
    EOFError,
    httpx.TransportError,
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
)


def _categorize_message(message: str) -> ErrorKind:
    if any(pattern.search(message) for pattern in TOOL_ERROR_PATTERNS):
        return ErrorKind.TOOL
    if any(pattern.search(message) for pattern in CONNECTION_ERROR_PATTERNS):
        return ErrorKind.TRANSPORT
    return ErrorKind.TOOL


def categorize_error(error: BaseException) -> ErrorKind:
    """
    Decide whether a failure is tool-shaped or connection-shaped.

    Args:
        error: Any exception raised while talking to the server

    Returns:
        The ErrorKind to act on. Ambiguous failures are reported as TOOL.
    """
    if isinstance(error, McpLinkError):
        return error.kind

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT

    if isinstance(error, McpError):
        if error.error.code in TOOL_ERROR_CODES:
            return ErrorKind.TOOL
        return _categorize_message(error.error.message or str(error))

    if isinstance(error, _TRANSPORT_EXCEPTION_TYPES):
        return ErrorKind.TRANSPORT

    if isinstance(error, BaseExceptionGroup):
        kinds = [categorize_error(inner) for inner in error.exceptions]
        for kind in (ErrorKind.CONFIGURATION, ErrorKind.TIMEOUT, ErrorKind.TRANSPORT):
            if kind in kinds:
                return kind
        return ErrorKind.TOOL

    return _categorize_message(str(error))


def is_transport_shaped(kind: ErrorKind) -> bool:
    """Return True for kinds that mean the connection itself is unusable."""
    return kind in (ErrorKind.TRANSPORT, ErrorKind.TIMEOUT)
