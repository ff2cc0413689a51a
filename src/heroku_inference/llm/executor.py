"""HTTP POST with timeout, bounded retries and linear backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from heroku_inference.errors import (
    ErrorClassifier,
    ExhaustedRetriesError,
    InferenceError,
    default_classifier,
)

_logger = logging.getLogger(__name__)

# Retry configuration
DEFAULT_MAX_RETRIES = 2
_BACKOFF_BASE = 1.0  # seconds -- linear: 1, 2, 3


def build_headers(credential: str) -> dict[str, str]:
    """Headers sent with every attempt."""
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {credential}",
    }


class RequestExecutor:
    """Issues one logical POST, retrying retryable failures.

    Each :meth:`execute` call keeps its own attempt state, so a single
    executor can serve concurrent calls.  Pass *client* to share an
    ``httpx.AsyncClient``; otherwise one is created and closed by
    :meth:`close`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=None)
        self._classifier = classifier or default_classifier

    async def execute(
        self,
        url: str,
        credential: str,
        body: dict[str, Any],
        timeout: float | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        stream: bool = False,
    ) -> httpx.Response:
        """POST *body* to *url* and return the first successful response.

        With ``stream=True`` the body is left unread and the caller owns
        closing the response.  Without *timeout* an attempt has no deadline at all,
        not even httpx's default one.

        Raises
        ------
        ClientRejectedError
            On a 4xx status; no further attempts are made.
        ExhaustedRetriesError
            When ``max_retries + 1`` attempts all failed retryably.
        """
        headers = build_headers(credential)
        total = max(0, max_retries) + 1
        last_error: InferenceError | None = None

        for attempt in range(total):
            try:
                resp = await self._attempt(url, headers, body, timeout, stream)
            except (asyncio.TimeoutError, httpx.HTTPError, OSError) as e:
                last_error = self._classifier.classify_exception(e)
                _logger.warning(
                    "Request error (attempt %d/%d): %s",
                    attempt + 1, total, last_error.message,
                )
            else:
                if resp.is_success:
                    return resp
                error = await self._classify_response(resp)
                if not error.retryable:
                    _logger.warning("Request rejected: %s", error.message)
                    raise error
                last_error = error
                _logger.warning(
                    "API returned %d (attempt %d/%d), retrying...",
                    resp.status_code, attempt + 1, total,
                )

            if attempt + 1 < total:
                await asyncio.sleep(_BACKOFF_BASE * (attempt + 1))

        detail = last_error.message if last_error else "Unknown error"
        raise ExhaustedRetriesError(
            f"Request failed after {total} attempts: {detail}",
            last_error=last_error,
            attempts=total,
        ) from last_error

    async def _attempt(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        timeout: float | None,
        stream: bool,
    ) -> httpx.Response:
        request = self._client.build_request(
            "POST",
            url,
            json=body,
            headers=headers,
            timeout=httpx.Timeout(timeout) if timeout else None,
        )
        send = self._client.send(request, stream=stream)
        if timeout:
            return await asyncio.wait_for(send, timeout)
        return await send

    async def _classify_response(self, resp: httpx.Response) -> InferenceError:
        """Read an error response, close it, and classify it."""
        try:
            await resp.aread()
        except httpx.HTTPError as e:
            _logger.debug("Could not read error body: %s", e)
        finally:
            await resp.aclose()
        body: Any = None
        if 400 <= resp.status_code <= 499:
            try:
                body = resp.json()
            except (ValueError, httpx.ResponseNotRead):
                body = {"message": resp.reason_phrase}
        return self._classifier.classify(
            resp.status_code, body, reason=resp.reason_phrase,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client if this executor created it."""
        if self._owns_client:
            await self._client.aclose()
