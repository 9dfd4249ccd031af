"""Chunk framing shared by the chat and pull relays.

The backend writes newline-delimited JSON, and the relay re-emits each
object as an event-stream ``data:`` line. Neither side aligns network
chunks with line boundaries, so both directions go through an
incremental decoder that holds the trailing partial line between feeds.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import structlog

logger = structlog.get_logger()

SSE_DATA_PREFIX = "data:"


class LineDecoder:
    """Incremental bytes-to-lines decoder.

    ``feed`` returns every complete, non-blank line seen so far and keeps
    the unterminated remainder for the next call. ``flush`` returns that
    remainder once the stream has ended.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        *complete, self._pending = text.split("\n")
        return [line.rstrip("\r") for line in complete if line.strip()]

    def flush(self) -> list[str]:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        tail = tail.rstrip("\r")
        return [tail] if tail.strip() else []


def decode_json_line(line: str) -> dict[str, Any] | None:
    """Decode one line into a JSON object, or None when it is malformed."""
    try:
        value = json.loads(line)
    except ValueError:
        logger.debug("malformed_line_dropped", line_preview=line[:80])
        return None
    if not isinstance(value, dict):
        logger.debug("non_object_line_dropped", line_preview=line[:80])
        return None
    return value


async def iter_json_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Turn a chunked NDJSON byte stream into decoded objects, in order."""
    decoder = LineDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            event = decode_json_line(line)
            if event is not None:
                yield event
    for line in decoder.flush():
        event = decode_json_line(line)
        if event is not None:
            yield event


def encode_sse(payload: dict[str, Any]) -> bytes:
    """Frame one object as an event-stream ``data:`` event."""
    return f"{SSE_DATA_PREFIX} {json.dumps(payload)}\n\n".encode("utf-8")


class SSEDecoder:
    """Client-side inverse of ``encode_sse``.

    Lines that are not ``data:`` lines (comments, event names, blank
    separators) are ignored, as are payloads that fail to decode.
    """

    def __init__(self) -> None:
        self._lines = LineDecoder()

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        return self._decode(self._lines.feed(chunk))

    def flush(self) -> list[dict[str, Any]]:
        return self._decode(self._lines.flush())

    @staticmethod
    def _decode(lines: list[str]) -> list[dict[str, Any]]:
        events = []
        for line in lines:
            if not line.startswith(SSE_DATA_PREFIX):
                continue
            event = decode_json_line(line[len(SSE_DATA_PREFIX):].strip())
            if event is not None:
                events.append(event)
        return events


async def iter_sse_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Decode an event-stream byte stream into its ``data:`` objects."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
