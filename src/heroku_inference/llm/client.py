"""Async client for the Heroku chat-completion and agent APIs.

Blocking calls return an :class:`AggregatedResult`; streaming calls yield
:class:`StreamChunk` objects as frames arrive.  Both go through the same
:class:`RequestExecutor` for retries and through :class:`DeltaAggregator`
for reconstruction.
"""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncGenerator

import httpx

from heroku_inference.config import (
    AGENT_ENDPOINT,
    CHAT_ENDPOINT,
    ClientConfig,
    resolve_config,
)
from heroku_inference.errors import InferenceError
from heroku_inference.types import AggregatedResult, ChatRequest, StreamChunk

from .aggregator import DeltaAggregator, collect, stream_chunks
from .executor import RequestExecutor
from .sse import aiter_sse_frames

_logger = logging.getLogger(__name__)

_TOOL_CHOICE_KEYWORDS = ("none", "auto", "required")


def _clean(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is ``None``."""
    return {k: v for k, v in payload.items() if v is not None}


def _normalize_tool_choice(tool_choice: Any) -> Any:
    """A bare function name becomes the structured ``function`` form."""
    if isinstance(tool_choice, str) and tool_choice not in _TOOL_CHOICE_KEYWORDS:
        return {"type": "function", "function": {"name": tool_choice}}
    return tool_choice


class InferenceClient:
    """Client for an OpenAI-style chat endpoint served over SSE.

    Usage::

        async with InferenceClient(model="claude-4-sonnet") as client:
            result = await client.chat([{"role": "user", "content": "Hi"}])
            async for chunk in client.chat_stream(messages):
                print(chunk.content, end="")
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        **overrides: Any,
    ) -> None:
        self.config = resolve_config(
            api_key=api_key,
            api_url=api_url,
            model=model,
            base=config,
            **overrides,
        )
        self._executor = RequestExecutor(http_client)

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def chat_request(
        self,
        messages: list[dict[str, Any]],
        stream: bool | None = None,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: Any = None,
        **params: Any,
    ) -> ChatRequest:
        """Build the descriptor for a ``/v1/chat/completions`` call."""
        cfg = self.config
        use_stream = cfg.streaming if stream is None else stream
        body: dict[str, Any] = {
            "model": params.pop("model", cfg.model),
            "messages": messages,
            "temperature": params.pop("temperature", cfg.temperature),
            "max_tokens": params.pop("max_tokens", cfg.max_tokens),
            "stop": params.pop("stop", cfg.stop),
            "stream": use_stream,
            "top_p": params.pop("top_p", cfg.top_p),
            "tools": tools or None,
            "tool_choice": _normalize_tool_choice(tool_choice),
        }
        body.update(cfg.extra_params)
        body.update(params)
        return ChatRequest(
            url=cfg.url_for(CHAT_ENDPOINT),
            credential=cfg.api_key,
            body=_clean(body),
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
            stream=use_stream,
        )

    def agent_request(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        **params: Any,
    ) -> ChatRequest:
        """Build the descriptor for a ``/v1/agents/heroku`` call (always streamed)."""
        cfg = self.config
        body: dict[str, Any] = {
            "model": params.pop("model", cfg.model),
            "messages": messages,
            "temperature": params.pop("temperature", cfg.temperature),
            "max_tokens_per_inference_request": params.pop(
                "max_tokens_per_inference_request", cfg.max_tokens,
            ),
            "stop": params.pop("stop", cfg.stop),
            "top_p": params.pop("top_p", cfg.top_p),
            "tools": tools or None,
            "metadata": metadata,
            "session_id": session_id,
        }
        body.update(cfg.extra_params)
        body.update(params)
        return ChatRequest(
            url=cfg.url_for(AGENT_ENDPOINT),
            credential=cfg.api_key,
            body=_clean(body),
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
            stream=True,
        )

    # ------------------------------------------------------------------
    # Descriptor-level calls
    # ------------------------------------------------------------------

    async def run(self, request: ChatRequest) -> AggregatedResult:
        """Execute *request* and return the reconstructed message."""
        if request.stream:
            return await collect(self.stream(request))

        start = time.monotonic()
        resp = await self._executor.execute(
            request.url,
            request.credential,
            request.body,
            timeout=request.timeout,
            max_retries=request.max_retries,
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise InferenceError(
                "Invalid JSON in completion response",
                status=resp.status_code,
                payload=resp.text,
            ) from e

        aggregator = DeltaAggregator()
        aggregator.feed_payload(data)
        result = aggregator.result()
        _logger.debug(
            "Completion finished in %.0fms (finish_reason=%s)",
            (time.monotonic() - start) * 1000, result.finish_reason,
        )
        return result

    async def stream(
        self, request: ChatRequest,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Execute *request* as a streamed call and yield chunks in order.

        A terminal stream error is raised from the iteration after any
        chunks that preceded it have been yielded.
        """
        resp = await self._executor.execute(
            request.url,
            request.credential,
            request.body,
            timeout=request.timeout,
            max_retries=request.max_retries,
            stream=True,
        )
        chunks = stream_chunks(aiter_sse_frames(resp))
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()
            await resp.aclose()

    # ------------------------------------------------------------------
    # Convenience API
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[dict[str, Any]],
        **params: Any,
    ) -> AggregatedResult:
        """Chat completion; streams internally when ``config.streaming`` is set."""
        return await self.run(self.chat_request(messages, **params))

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        **params: Any,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Streaming chat completion.  Yields :class:`StreamChunk` objects."""
        params["stream"] = True
        async for chunk in self.stream(self.chat_request(messages, **params)):
            yield chunk

    async def agent(
        self,
        messages: list[dict[str, Any]],
        **params: Any,
    ) -> AggregatedResult:
        """Run the agent API to completion and return the folded result."""
        return await self.run(self.agent_request(messages, **params))

    async def agent_stream(
        self,
        messages: list[dict[str, Any]],
        **params: Any,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Stream agent events; tool results arrive as ``chunk.tool_result``."""
        async for chunk in self.stream(self.agent_request(messages, **params)):
            yield chunk

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        await self._executor.close()

    async def __aenter__(self) -> InferenceClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
