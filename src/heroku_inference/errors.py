"""Error taxonomy and classification for inference calls.

Every failure surfaced to a caller is an :class:`InferenceError` carrying a
human-readable message, the HTTP status when one was obtained, and the raw
error payload when the service sent one.  :class:`ErrorClassifier` decides
whether a failure is worth another attempt.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

import httpx

_logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    """Whether the request executor should try again."""

    TERMINAL = "terminal"
    RETRYABLE = "retryable"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InferenceError(Exception):
    """Base class for every error raised by the client."""

    kind = ErrorKind.TERMINAL

    def __init__(
        self,
        message: str,
        status: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.RETRYABLE

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"status={self.status!r})"
        )


class ConfigError(InferenceError):
    """Credential, URL or model could not be resolved."""


class NetworkError(InferenceError):
    """Connection failure, timeout or aborted attempt."""

    kind = ErrorKind.RETRYABLE


class ServerUnavailableError(InferenceError):
    """The service answered with a 5xx status."""

    kind = ErrorKind.RETRYABLE


class ClientRejectedError(InferenceError):
    """The service rejected the request with a 4xx status."""


class StreamProtocolError(InferenceError):
    """In-band error frame or undecodable data inside an accepted stream."""


class ExhaustedRetriesError(InferenceError):
    """Every attempt failed with a retryable error."""

    def __init__(
        self,
        message: str,
        last_error: InferenceError | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message,
            status=last_error.status if last_error is not None else None,
            payload=last_error.payload if last_error is not None else None,
        )
        self.last_error = last_error
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

def _error_message(body: Any, fallback: str) -> str:
    """Pull a readable message out of an error body."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if body.get("message"):
            return str(body["message"])
    if isinstance(body, str) and body:
        return body
    return fallback


class ErrorClassifier:
    """Map HTTP statuses, transport exceptions and stream error frames to errors.

    Classes:
      4xx                    - ClientRejectedError (terminal)
      5xx                    - ServerUnavailableError (retryable)
      transport / timeout    - NetworkError (retryable)
      in-band error frame    - StreamProtocolError (terminal, any status)
    """

    def classify(
        self,
        status: int,
        body: Any = None,
        reason: str = "",
    ) -> InferenceError:
        """Classify a non-success HTTP response."""
        if 400 <= status <= 499:
            detail = _error_message(body, reason or f"HTTP {status}")
            return ClientRejectedError(
                f"Request failed with status {status}: {detail}",
                status=status,
                payload=body,
            )
        if 500 <= status <= 599:
            return ServerUnavailableError(
                f"Request failed with status {status}: {reason or 'server error'}",
                status=status,
                payload=body,
            )
        # 1xx/3xx leaking through means the transport misbehaved.
        return NetworkError(
            f"Unexpected status {status}: {reason}".rstrip(": "),
            status=status,
            payload=body,
        )

    def classify_exception(self, exc: BaseException) -> InferenceError:
        """Classify an exception raised while sending a request."""
        if isinstance(exc, InferenceError):
            return exc
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            return NetworkError(f"Request timed out: {exc!r}", payload=exc)
        if isinstance(exc, httpx.HTTPStatusError):
            return self.classify(
                exc.response.status_code,
                reason=exc.response.reason_phrase,
            )
        if isinstance(exc, (httpx.TransportError, OSError)):
            return NetworkError(f"Network error: {exc}", payload=exc)
        return NetworkError(f"Request failed: {exc!r}", payload=exc)

    def classify_stream_error(
        self,
        data: Any,
        message: str = "Error in SSE stream",
    ) -> StreamProtocolError:
        """Classify an error reported inside an otherwise successful stream."""
        detail = _error_message(data, "")
        if detail and detail not in message:
            message = f"{message}: {detail}"
        _logger.error("%s", message)
        return StreamProtocolError(message, payload=data)


default_classifier = ErrorClassifier()
