"""Server-Sent Events decoding.

:class:`SSEDecoder` is a push-style state machine: feed it raw bytes as they
arrive and it returns every frame completed by those bytes.
:func:`aiter_sse_frames` drives a decoder over an ``httpx.Response`` body and
closes the response on every exit path.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncIterator

import httpx

from heroku_inference.errors import NetworkError
from heroku_inference.types import SSEFrame

_logger = logging.getLogger(__name__)


class SSEDecoder:
    """Incremental decoder for the SSE text protocol.

    Handles ``event``, ``data``, ``id`` and ``retry`` fields, ``:`` comments,
    CRLF line endings and UTF-8 sequences split across reads.  ``retry`` is
    accepted but ignored since the client never reconnects.
    """

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None

    def feed(self, chunk: bytes) -> list[SSEFrame]:
        """Decode *chunk* and return the frames it completes."""
        self._buffer += self._text.decode(chunk)
        frames: list[SSEFrame] = []
        while True:
            end = self._buffer.find("\n")
            if end < 0:
                break
            line = self._buffer[:end]
            self._buffer = self._buffer[end + 1 :]
            if line.endswith("\r"):
                line = line[:-1]
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def finish(self) -> list[SSEFrame]:
        """Flush state at end of input.

        A trailing line without a newline is still processed, and a frame
        with pending ``data:`` lines is emitted even without the closing
        blank line.
        """
        self._buffer += self._text.decode(b"", final=True)
        frames: list[SSEFrame] = []
        if self._buffer:
            line = self._buffer.rstrip("\r")
            self._buffer = ""
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        frame = self._flush()
        if frame is not None:
            frames.append(frame)
        return frames

    def _process_line(self, line: str) -> SSEFrame | None:
        if not line:
            return self._flush()
        if line.startswith(":"):
            return None
        colon = line.find(":")
        if colon < 0:
            _logger.debug("Ignoring malformed SSE line: %r", line)
            return None
        name = line[:colon]
        value = line[colon + 1 :]
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        elif name == "retry":
            pass
        return None

    def _flush(self) -> SSEFrame | None:
        """Emit the pending frame, if any ``data:`` line was seen."""
        if not self._data:
            return None
        frame = SSEFrame(
            data="\n".join(self._data),
            event=self._event,
            id=self._id,
        )
        self._event = None
        self._data = []
        self._id = None
        return frame


async def aiter_sse_frames(response: httpx.Response) -> AsyncIterator[SSEFrame]:
    """Yield SSE frames from a streamed response body.

    The response is closed when the body is exhausted, when reading fails,
    and when the consumer stops iterating early (``aclose()`` on the
    generator).  Transport failures mid-body surface as :class:`NetworkError`.
    """
    decoder = SSEDecoder()
    try:
        async for chunk in response.aiter_bytes():
            for frame in decoder.feed(chunk):
                yield frame
        for frame in decoder.finish():
            yield frame
    except httpx.TransportError as e:
        _logger.error("SSE stream interrupted: %s", e)
        raise NetworkError(
            f"Failed to process SSE stream: {e}",
            status=response.status_code,
            payload=e,
        ) from e
    finally:
        await response.aclose()
