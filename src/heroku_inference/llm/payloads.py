"""Decoding of stream payloads into a small tagged union.

A completion chunk can carry text, tool-call fragments, a finish reason and
usage at once, so one frame decodes to a *list* of parts.  Shapes are
checked by explicit presence tests; anything unrecognised becomes
:class:`Unknown` rather than an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

from heroku_inference.errors import StreamProtocolError, default_classifier
from heroku_inference.types import SSEFrame, ToolCallFragment, ToolResult

_logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

# Event names that carry a stream-level meaning
_ERROR_EVENT = "error"
_DONE_EVENT = "done"

# Agent API ``object`` discriminators
_COMPLETION_OBJECTS = ("chat.completion", "chat.completion.chunk")
_TOOL_COMPLETION = "tool.completion"
_TOOL_ERROR = "tool.error"
_AGENT_ERROR = "agent.error"


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallDelta:
    fragment: ToolCallFragment


@dataclass
class FinishSignal:
    reason: str


@dataclass
class UsageReport:
    usage: dict[str, Any]


@dataclass
class ToolResultPayload:
    result: ToolResult


@dataclass
class ErrorFrame:
    message: str
    data: Any = None


@dataclass
class DoneSignal:
    pass


@dataclass
class Unknown:
    raw: Any = None


Payload = Union[
    TextDelta,
    ToolCallDelta,
    FinishSignal,
    UsageReport,
    ToolResultPayload,
    ErrorFrame,
    DoneSignal,
    Unknown,
]


# ---------------------------------------------------------------------------
# Frame level
# ---------------------------------------------------------------------------

def decode_frame(frame: SSEFrame) -> list[Payload]:
    """Decode one SSE frame.

    Raises
    ------
    StreamProtocolError
        If the data is not JSON and not the termination sentinel.
    """
    if frame.event == _ERROR_EVENT:
        try:
            detail: Any = json.loads(frame.data)
        except json.JSONDecodeError:
            detail = frame.data
        return [ErrorFrame("Error in SSE stream", detail)]
    if frame.event == _DONE_EVENT:
        return [DoneSignal()]

    data = frame.data
    if data.strip() == DONE_SENTINEL:
        return [DoneSignal()]
    if not data.strip():
        return [Unknown(data)]

    try:
        obj = json.loads(data)
    except json.JSONDecodeError as e:
        if DONE_SENTINEL in data:
            return [DoneSignal()]
        raise StreamProtocolError(
            "Failed to parse SSE data chunk",
            payload={"event": frame.event, "data": data, "error": str(e)},
        ) from e
    return decode_payload(obj)


# ---------------------------------------------------------------------------
# Payload level
# ---------------------------------------------------------------------------

def decode_payload(obj: Any) -> list[Payload]:
    """Decode a parsed JSON payload (streamed chunk or full response body)."""
    if not isinstance(obj, dict):
        return [Unknown(obj)]

    kind = obj.get("object")
    if kind == _AGENT_ERROR:
        return [ErrorFrame(f"Agent error: {obj.get('message', '')}", obj)]
    if kind == _TOOL_ERROR:
        name = obj.get("name") or obj.get("id")
        return [ErrorFrame(f"Tool '{name}' failed: {obj.get('error', '')}", obj)]
    if kind == _TOOL_COMPLETION:
        return _decode_tool_completion(obj)
    if "error" in obj and not obj.get("choices"):
        return [ErrorFrame("Error in SSE stream", obj)]
    if kind is not None and kind not in _COMPLETION_OBJECTS:
        _logger.warning("Unknown stream object type: %s", kind)
        return [Unknown(obj)]

    parts: list[Payload] = []
    choices = obj.get("choices")
    if isinstance(choices, list):
        for choice in choices:
            if isinstance(choice, dict):
                parts.extend(_decode_choice(choice))
    usage = obj.get("usage")
    if isinstance(usage, dict) and usage:
        parts.append(UsageReport(usage))
    return parts or [Unknown(obj)]


def _decode_choice(choice: dict[str, Any]) -> list[Payload]:
    parts: list[Payload] = []
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = choice.get("message")
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str) and content:
            parts.append(TextDelta(content))
        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            for position, tc in enumerate(tool_calls):
                fragment = _decode_tool_call(tc, position)
                if fragment is not None:
                    parts.append(ToolCallDelta(fragment))
    finish = choice.get("finish_reason")
    if isinstance(finish, str) and finish:
        parts.append(FinishSignal(finish))
    return parts


def _decode_tool_call(tc: Any, position: int) -> ToolCallFragment | None:
    if not isinstance(tc, dict):
        return None
    func = tc.get("function")
    if not isinstance(func, dict):
        func = {}
    index = tc.get("index")
    if not isinstance(index, int):
        index = position
    args = func.get("arguments")
    if args is not None and not isinstance(args, str):
        # Some servers send already-decoded arguments
        args = json.dumps(args)
    return ToolCallFragment(
        index=index,
        id=tc.get("id") or None,
        name=func.get("name") or None,
        args_fragment=args,
    )


def _decode_tool_completion(obj: dict[str, Any]) -> list[Payload]:
    choices = obj.get("choices")
    first = choices[0] if isinstance(choices, list) and choices else None
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        return [Unknown(obj)]
    return [
        ToolResultPayload(
            ToolResult(
                tool_call_id=message.get("tool_call_id"),
                name=message.get("name"),
                content=message.get("content"),
            )
        )
    ]


def error_from_frame(part: ErrorFrame) -> StreamProtocolError:
    """Turn an in-band error part into the exception to raise."""
    return default_classifier.classify_stream_error(part.data, part.message)
