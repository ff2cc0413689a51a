"""Displayable fallback text for tool-call-only replies.

A presentation convenience kept outside :class:`DeltaAggregator`: callers
that must always show some text wrap a result or a chunk stream here.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import AsyncIterator

from heroku_inference.types import AggregatedResult, StreamChunk

_logger = logging.getLogger(__name__)

FALLBACK_TEXT = "I'll use the available tools to help you."


def apply_fallback_text(
    result: AggregatedResult,
    text: str = FALLBACK_TEXT,
) -> AggregatedResult:
    """Return *result* with *text* as content if it has tool calls but no text."""
    if result.content or not result.has_tool_calls:
        return result
    _logger.debug("Result has tool calls but no text, using fallback text")
    return replace(result, content=text)


async def with_fallback_text(
    chunks: AsyncIterator[StreamChunk],
    text: str = FALLBACK_TEXT,
) -> AsyncIterator[StreamChunk]:
    """Pass *chunks* through, appending a text chunk if only tool calls came."""
    saw_text = False
    saw_tool_call = False
    try:
        async for chunk in chunks:
            saw_text = saw_text or bool(chunk.content)
            saw_tool_call = saw_tool_call or bool(chunk.tool_call_fragments)
            yield chunk
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
    if saw_tool_call and not saw_text:
        yield StreamChunk(content=text)
