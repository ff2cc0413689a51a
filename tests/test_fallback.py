"""Tests for the tool-call-only fallback text."""

from __future__ import annotations

import httpx
import pytest

from heroku_inference import InferenceClient
from heroku_inference.llm.fallback import (
    FALLBACK_TEXT,
    apply_fallback_text,
    with_fallback_text,
)
from heroku_inference.types import (
    AggregatedResult,
    StreamChunk,
    ToolCall,
    ToolCallFragment,
)

_CALL = ToolCall(id="c1", name="search", args={"q": "x"})


async def _aiter(items):
    for item in items:
        yield item


class TestApplyFallbackText:
    def test_tool_calls_without_text(self):
        result = AggregatedResult(tool_calls=[_CALL], finish_reason="tool_calls")
        out = apply_fallback_text(result)
        assert out.content == FALLBACK_TEXT
        assert out.tool_calls == [_CALL]
        assert result.content == ""

    def test_existing_text_kept(self):
        result = AggregatedResult(content="Let me check.", tool_calls=[_CALL])
        assert apply_fallback_text(result) is result

    def test_no_tool_calls_left_empty(self):
        result = AggregatedResult(finish_reason="stop")
        assert apply_fallback_text(result).content == ""

    def test_custom_text(self):
        result = AggregatedResult(tool_calls=[_CALL])
        assert apply_fallback_text(result, "Working on it").content == "Working on it"

    @pytest.mark.asyncio
    async def test_wraps_client_result(self, monkeypatch):
        for var in ("INFERENCE_KEY", "INFERENCE_URL", "INFERENCE_MODEL_ID"):
            monkeypatch.delenv(var, raising=False)
        body = {
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "c1",
                        "function": {"name": "search", "arguments": '{"q": "x"}'},
                    }],
                },
                "finish_reason": "tool_calls",
            }],
        }
        client = InferenceClient(
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body)),
            ),
            api_key="k",
            model="m",
        )
        raw = await client.chat([{"role": "user", "content": "find x"}])
        assert raw.content == ""
        assert apply_fallback_text(raw).content == FALLBACK_TEXT


class TestWithFallbackText:
    @pytest.mark.asyncio
    async def test_appends_after_tool_only_stream(self):
        chunks = [
            StreamChunk(tool_call_fragments=[ToolCallFragment(index=0, id="c1", name="f")]),
            StreamChunk(finish_reason="tool_calls"),
        ]
        out = [c async for c in with_fallback_text(_aiter(chunks))]
        assert out[:2] == chunks
        assert out[2] == StreamChunk(content=FALLBACK_TEXT)

    @pytest.mark.asyncio
    async def test_no_append_when_text_streamed(self):
        chunks = [
            StreamChunk(content="Sure"),
            StreamChunk(tool_call_fragments=[ToolCallFragment(index=0, id="c1", name="f")]),
        ]
        out = [c async for c in with_fallback_text(_aiter(chunks))]
        assert out == chunks

    @pytest.mark.asyncio
    async def test_no_append_for_text_only_stream(self):
        chunks = [StreamChunk(content="a"), StreamChunk(finish_reason="stop")]
        out = [c async for c in with_fallback_text(_aiter(chunks))]
        assert out == chunks

    @pytest.mark.asyncio
    async def test_early_stop_closes_source(self):
        closed = False

        async def source():
            nonlocal closed
            try:
                yield StreamChunk(content="a")
                yield StreamChunk(content="b")
            finally:
                closed = True

        gen = with_fallback_text(source())
        assert (await gen.__anext__()).content == "a"
        await gen.aclose()
        assert closed
