"""Shared data types for the Heroku inference client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Wire types
# ---------------------------------------------------------------------------

@dataclass
class SSEFrame:
    """One decoded Server-Sent Event.

    ``data`` is the newline-join of every ``data:`` line in the block.
    """

    data: str
    event: str | None = None
    id: str | None = None


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

@dataclass
class ToolCallFragment:
    """A partial tool call carried by one streaming delta."""

    index: int
    id: str | None = None
    name: str | None = None
    args_fragment: str | None = None


@dataclass
class ToolCall:
    """A tool call reassembled from its fragments.

    ``args`` is the parsed JSON value, or the raw concatenated string when
    the fragments do not form valid JSON.
    """

    id: str
    name: str
    args: Any


@dataclass
class ToolResult:
    """Result of a tool executed server-side by the agent API."""

    tool_call_id: str | None
    name: str | None
    content: Any


# ---------------------------------------------------------------------------
# Stream output
# ---------------------------------------------------------------------------

@dataclass
class StreamChunk:
    """Normalised incremental output handed to streaming consumers."""

    content: str = ""
    tool_call_fragments: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None
    tool_result: ToolResult | None = None
    usage: dict[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.content
            or self.tool_call_fragments
            or self.finish_reason
            or self.tool_result
            or self.usage
        )


@dataclass
class AggregatedResult:
    """Complete assistant message rebuilt from a stream or a JSON body."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


# ---------------------------------------------------------------------------
# Request descriptor
# ---------------------------------------------------------------------------

@dataclass
class ChatRequest:
    """Everything needed to issue one call against the inference service."""

    url: str
    credential: str
    body: dict[str, Any]
    timeout: float | None = None
    max_retries: int = 2
    stream: bool = False
