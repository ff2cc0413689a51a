"""Streaming protocol client: SSE decoding, retries and delta aggregation."""

from heroku_inference.llm.aggregator import (
    DeltaAggregator,
    StreamState,
    ToolCallAccumulator,
    collect,
    stream_chunks,
)
from heroku_inference.llm.client import InferenceClient
from heroku_inference.llm.executor import RequestExecutor
from heroku_inference.llm.fallback import (
    FALLBACK_TEXT,
    apply_fallback_text,
    with_fallback_text,
)
from heroku_inference.llm.sse import SSEDecoder, aiter_sse_frames

__all__ = [
    "DeltaAggregator",
    "FALLBACK_TEXT",
    "InferenceClient",
    "RequestExecutor",
    "SSEDecoder",
    "StreamState",
    "ToolCallAccumulator",
    "aiter_sse_frames",
    "apply_fallback_text",
    "collect",
    "stream_chunks",
    "with_fallback_text",
]
