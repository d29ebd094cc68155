"""Incremental decoder for the planning server-sent event stream.

Frames are separated by a blank line and carry one or more ``data: <json>``
lines. The transport may cut the stream anywhere, including in the middle of
a frame or of a multi-byte character, so text is buffered until a frame
separator arrives. Lines whose payload is not a JSON object are dropped.
"""

import codecs
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterable

logger = logging.getLogger(__name__)

FRAME_SEPARATOR = "\n\n"
DATA_PREFIX = "data: "


def parse_frame(frame: str) -> list[dict[str, Any]]:
    """Parse the ``data:`` lines of one frame, skipping malformed payloads."""
    payloads = []
    for line in frame.split("\n"):
        if not line.startswith(DATA_PREFIX):
            continue
        raw = line[len(DATA_PREFIX):]
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Dropping malformed SSE payload: {raw[:80]!r}")
            continue
        if isinstance(data, dict):
            payloads.append(data)
        else:
            logger.debug(f"Dropping non-object SSE payload: {raw[:80]!r}")
    return payloads


class SSEDecoder:
    """Stateful text-level decoder.

    Usage:
        decoder = SSEDecoder()
        for chunk in chunks:
            for payload in decoder.feed(chunk):
                handle(payload)
        for payload in decoder.flush():
            handle(payload)
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet terminated by a frame separator."""
        return self._buffer

    def feed(self, text: str) -> list[dict[str, Any]]:
        """Add text and return the payloads of every frame it completes."""
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        *frames, self._buffer = self._buffer.split(FRAME_SEPARATOR)

        payloads = []
        for frame in frames:
            payloads.extend(parse_frame(frame))
        return payloads

    def flush(self) -> list[dict[str, Any]]:
        """Parse whatever is left once the stream has ended (best effort)."""
        residual, self._buffer = self._buffer, ""
        if not residual.strip():
            return []
        return parse_frame(residual)


async def iter_sse_payloads(
    chunks: AsyncIterable[bytes | str],
) -> AsyncGenerator[dict[str, Any], None]:
    """Decode an async stream of raw chunks into JSON payloads, in order."""
    decoder = SSEDecoder()
    utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    async for chunk in chunks:
        text = utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
        for payload in decoder.feed(text):
            yield payload

    tail = utf8.decode(b"", final=True)
    if tail:
        for payload in decoder.feed(tail):
            yield payload
    for payload in decoder.flush():
        yield payload
