"""Delta aggregation for streamed chat completions.

:class:`DeltaAggregator` owns all state accumulated across a stream.  Every
frame it accepts becomes one :class:`StreamChunk`, and the aggregator's own
state is exactly the fold of the chunks it emitted, so a streaming consumer
can rebuild the final result with :func:`collect`.

States:
  open    - accepting frames
  closed  - done marker seen or input exhausted; result available
  failed  - in-band error or undecodable frame; result withheld
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, AsyncIterator, Iterable

from heroku_inference.errors import InferenceError, StreamProtocolError
from heroku_inference.types import (
    AggregatedResult,
    SSEFrame,
    StreamChunk,
    ToolCall,
    ToolCallFragment,
    ToolResult,
)

from .payloads import (
    DoneSignal,
    ErrorFrame,
    FinishSignal,
    Payload,
    TextDelta,
    ToolCallDelta,
    ToolResultPayload,
    Unknown,
    UsageReport,
    decode_frame,
    decode_payload,
    error_from_frame,
)

_logger = logging.getLogger(__name__)


class StreamState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# ToolCallAccumulator
# ---------------------------------------------------------------------------

class ToolCallAccumulator:
    """Accumulate tool calls whose arguments arrive as string fragments.

    Fragments are keyed by ``id`` when present.  A fragment without an id
    joins the call that last claimed its ``index``, or is keyed by the index
    itself when no id was ever seen for it.  Calls keep first-arrival order.
    """

    def __init__(self) -> None:
        self._calls: dict[str | int, dict[str, Any]] = {}
        self._index_keys: dict[int, str] = {}

    def _key_for(self, fragment: ToolCallFragment) -> str | int:
        if fragment.id:
            self._index_keys[fragment.index] = fragment.id
            return fragment.id
        return self._index_keys.get(fragment.index, fragment.index)

    def feed(self, fragment: ToolCallFragment) -> None:
        key = self._key_for(fragment)
        entry = self._calls.get(key)
        if entry is None:
            entry = {"name": "", "arguments": []}
            self._calls[key] = entry
        if fragment.name:
            entry["name"] = fragment.name
        if fragment.args_fragment is not None:
            entry["arguments"].append(fragment.args_fragment)

    def has_calls(self) -> bool:
        return bool(self._calls)

    def finalize(self) -> list[ToolCall]:
        """Build complete calls; unparseable arguments are kept as raw text."""
        result: list[ToolCall] = []
        for key, entry in self._calls.items():
            name = entry["name"]
            raw_args = "".join(entry["arguments"])
            if not name or not raw_args:
                _logger.debug("Dropping incomplete tool call %r", key)
                continue
            try:
                args: Any = json.loads(raw_args)
            except json.JSONDecodeError:
                _logger.warning(
                    "Tool call %s arguments are not valid JSON; keeping raw string",
                    name,
                )
                args = raw_args
            result.append(ToolCall(id=str(key), name=name, args=args))
        return result


# ---------------------------------------------------------------------------
# DeltaAggregator
# ---------------------------------------------------------------------------

class DeltaAggregator:
    """State machine that rebuilds one assistant message from a stream."""

    def __init__(self) -> None:
        self.state = StreamState.OPEN
        self.error: InferenceError | None = None
        self._content: list[str] = []
        self._tools = ToolCallAccumulator()
        self._tool_results: list[ToolResult] = []
        self._finish_reason: str | None = None
        self._usage: dict[str, Any] = {}

    @property
    def is_open(self) -> bool:
        return self.state is StreamState.OPEN

    @property
    def content(self) -> str:
        return "".join(self._content)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def feed(self, frame: SSEFrame) -> StreamChunk | None:
        """Consume one frame and return the chunk it produced, if any.

        Raises :class:`StreamProtocolError` (and moves to ``failed``) on an
        error frame or undecodable data.
        """
        self._ensure_open()
        try:
            parts = decode_frame(frame)
        except StreamProtocolError as e:
            self.fail(e)
            raise
        return self._consume(parts)

    def feed_payload(self, obj: Any) -> StreamChunk | None:
        """Consume an already-parsed JSON payload (e.g. a non-streaming body)."""
        self._ensure_open()
        return self._consume(decode_payload(obj))

    def _consume(self, parts: Iterable[Payload]) -> StreamChunk | None:
        chunk = StreamChunk()
        done = False
        for part in parts:
            if isinstance(part, ErrorFrame):
                error = error_from_frame(part)
                self.fail(error)
                raise error
            if isinstance(part, DoneSignal):
                done = True
            elif isinstance(part, TextDelta):
                chunk.content += part.text
            elif isinstance(part, ToolCallDelta):
                chunk.tool_call_fragments.append(part.fragment)
            elif isinstance(part, FinishSignal):
                chunk.finish_reason = part.reason
            elif isinstance(part, UsageReport):
                chunk.usage = part.usage
            elif isinstance(part, ToolResultPayload):
                chunk.tool_result = part.result
            elif isinstance(part, Unknown):
                _logger.debug("Skipping unrecognised payload: %r", part.raw)

        if not chunk.is_empty:
            self.apply(chunk)
        if done:
            self.close()
        return None if chunk.is_empty else chunk

    def apply(self, chunk: StreamChunk) -> None:
        """Fold one chunk into the running aggregate."""
        self._ensure_open()
        if chunk.content:
            self._content.append(chunk.content)
        for fragment in chunk.tool_call_fragments:
            self._tools.feed(fragment)
        if chunk.finish_reason:
            self._finish_reason = chunk.finish_reason
        if chunk.tool_result is not None:
            self._tool_results.append(chunk.tool_result)
        if chunk.usage:
            self._usage = dict(chunk.usage)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self.state is StreamState.OPEN:
            self.state = StreamState.CLOSED

    def fail(self, error: InferenceError) -> None:
        self.state = StreamState.FAILED
        self.error = error

    def _ensure_open(self) -> None:
        if self.state is not StreamState.OPEN:
            raise RuntimeError(f"Aggregator is {self.state.value}")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def result(self) -> AggregatedResult:
        """Close the aggregate and return the reconstructed message.

        A failed stream has no result: the error that failed it is raised.
        """
        if self.state is StreamState.FAILED:
            raise self.error or StreamProtocolError("Stream failed")
        self.close()
        return AggregatedResult(
            content=self.content,
            tool_calls=self._tools.finalize(),
            finish_reason=self._finish_reason,
            tool_results=list(self._tool_results),
            usage=dict(self._usage),
        )


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

async def stream_chunks(
    frames: AsyncIterator[SSEFrame],
    aggregator: DeltaAggregator | None = None,
) -> AsyncIterator[StreamChunk]:
    """Run *frames* through an aggregator, yielding chunks in frame order.

    Iteration stops at the done marker; frames after it are never decoded.
    *frames* is closed on every exit path.
    """
    agg = aggregator if aggregator is not None else DeltaAggregator()
    try:
        async for frame in frames:
            chunk = agg.feed(frame)
            if chunk is not None:
                yield chunk
            if not agg.is_open:
                break
    except InferenceError as e:
        if agg.is_open:
            agg.fail(e)
        raise
    finally:
        aclose = getattr(frames, "aclose", None)
        if aclose is not None:
            await aclose()
    agg.close()


async def collect(chunks: AsyncIterator[StreamChunk]) -> AggregatedResult:
    """Fold a chunk stream into the final :class:`AggregatedResult`."""
    agg = DeltaAggregator()
    try:
        async for chunk in chunks:
            agg.apply(chunk)
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
    return agg.result()
