"""Primitives advertised by an MCP server and tool call outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from mcplink.domain.errors import ErrorKind

__all__ = [
    "PrimitiveKind",
    "Tool",
    "Resource",
    "Prompt",
    "Primitive",
    "PrimitivesSnapshot",
    "ToolCallOutcome",
]


class PrimitiveKind(Enum):
    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"


@dataclass(frozen=True)
class Tool:
    name: str
    description: str | None = None
    input_schema: dict[str, Any] = field(default_factory=dict)
    kind: PrimitiveKind = field(default=PrimitiveKind.TOOL, init=False)


@dataclass(frozen=True)
class Resource:
    name: str
    uri: str
    description: str | None = None
    mime_type: str | None = None
    kind: PrimitiveKind = field(default=PrimitiveKind.RESOURCE, init=False)


@dataclass(frozen=True)
class Prompt:
    name: str
    description: str | None = None
    arguments: tuple[dict[str, Any], ...] = ()
    kind: PrimitiveKind = field(default=PrimitiveKind.PROMPT, init=False)


Primitive = Union[Tool, Resource, Prompt]


@dataclass(frozen=True)
class PrimitivesSnapshot:
    """All primitives fetched from the server at one point in time.

    Snapshots are replaced wholesale on refresh and never mutated.
    """

    primitives: tuple[Primitive, ...]
    fetched_at: float

    @property
    def tools(self) -> list[Tool]:
        return [p for p in self.primitives if isinstance(p, Tool)]

    @property
    def resources(self) -> list[Resource]:
        return [p for p in self.primitives if isinstance(p, Resource)]

    @property
    def prompts(self) -> list[Prompt]:
        return [p for p in self.primitives if isinstance(p, Prompt)]


@dataclass(frozen=True)
class ToolCallOutcome:
    """Result of a tool call, tagged so callers can branch on the failure kind.

    Attributes:
        ok: True when the tool ran and returned a result
        result: The raw result (also set for tool errors reported as results)
        error_kind: TOOL, TRANSPORT or TIMEOUT when ok is False
        message: Human readable failure description
    """

    ok: bool
    result: Any = None
    error_kind: ErrorKind | None = None
    message: str | None = None

    @classmethod
    def success(cls, result: Any) -> "ToolCallOutcome":
        return cls(ok=True, result=result)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, result: Any = None) -> "ToolCallOutcome":
        return cls(ok=False, result=result, error_kind=kind, message=message)
