"""Event-stream response writer for aiohttp handlers."""

from __future__ import annotations

from typing import Any

import structlog
from aiohttp import web

from ollama_chat_relay.relay.framing import encode_sse

logger = structlog.get_logger()

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


class EventStreamWriter:
    """Writes ``data:`` events to one client.

    ``send`` returns False once the client has gone away; callers stop
    producing at that point so the backend stream can be released.
    """

    def __init__(self, request: web.Request) -> None:
        self._request = request
        self._response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        self._disconnected = False
        self._sent = 0

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def prepare(self) -> None:
        await self._response.prepare(self._request)

    async def send(self, payload: dict[str, Any]) -> bool:
        if self._disconnected:
            return False
        transport = self._request.transport
        if transport is None or transport.is_closing():
            self._mark_disconnected()
            return False
        try:
            await self._response.write(encode_sse(payload))
        except ConnectionResetError:
            self._mark_disconnected()
            return False
        self._sent += 1
        return True

    async def close(self) -> web.StreamResponse:
        if not self._disconnected:
            try:
                await self._response.write_eof()
            except ConnectionResetError:
                self._mark_disconnected()
        return self._response

    def _mark_disconnected(self) -> None:
        self._disconnected = True
        logger.info(
            "client_disconnected",
            path=self._request.path,
            events_sent=self._sent,
        )
