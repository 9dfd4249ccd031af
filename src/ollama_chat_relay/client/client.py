"""Client for the relay's HTTP API.

Consumes the relay's event streams with the same ``ChatRelay`` and
``PullRelay`` used on the server, so accumulation and reasoning
extraction behave identically on both ends.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel

from ollama_chat_relay.config import Settings
from ollama_chat_relay.errors import BackendError, RelayError, StreamError
from ollama_chat_relay.gateway.images import DEFAULT_ANALYSIS_PROMPT
from ollama_chat_relay.relay.chat import ChatRelay
from ollama_chat_relay.relay.framing import iter_sse_events
from ollama_chat_relay.relay.models import (
    ChatComplete,
    ChatDelta,
    ChatError,
    DownloadProgress,
    Message,
    PullCompleted,
    PullProgress,
)
from ollama_chat_relay.relay.pull import PullRelay

logger = structlog.get_logger()

MessageLike = Message | dict[str, Any]


def _message_payload(message: MessageLike) -> dict[str, Any]:
    if isinstance(message, BaseModel):
        return message.model_dump(exclude_none=True)
    return dict(message)


async def _call(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sync or async callback."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RelayClient:
    """Async client for the relay API.

    Ordinary calls use ``timeout``; image analysis uses
    ``analyze_timeout``; event streams run without a timeout.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        analyze_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )
        self._analyze_timeout = analyze_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RelayClient:
        return cls(
            settings.relay_api_url,
            timeout=settings.relay_client_timeout,
            analyze_timeout=settings.relay_analyze_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> RelayClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        failure: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("relay_request_failed", path=path, error=str(e))
            raise RelayError(failure) from e
        return response.json()

    async def _events(
        self,
        path: str,
        payload: dict[str, Any],
        failure: str,
    ) -> AsyncIterator[dict[str, Any]]:
        try:
            async with self._client.stream("POST", path, json=payload, timeout=None) as response:
                if response.is_error:
                    await response.aread()
                    logger.error(
                        "relay_stream_rejected",
                        path=path,
                        status=response.status_code,
                        body=response.text,
                    )
                    raise BackendError(failure, status=response.status_code)
                async for event in iter_sse_events(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as e:
            logger.error("relay_stream_failed", path=path, error=str(e))
            raise BackendError(failure) from e

    # --- bounded calls ---

    async def health_check(self) -> dict[str, Any]:
        return await self._request("GET", "/health", "Failed to connect to Ollama service")

    async def get_models(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/models", "Failed to fetch models")
        return data.get("models") or []

    async def delete_model(self, name: str) -> dict[str, Any]:
        return await self._request(
            "DELETE", f"/models/{quote(name, safe='')}", "Failed to delete model"
        )

    async def get_model_info(self, name: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/models/{quote(name, safe='')}/info", "Failed to fetch model information"
        )

    async def chat_sync(
        self,
        model: str,
        messages: Sequence[MessageLike],
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload = {
            "model": model,
            "messages": [_message_payload(m) for m in messages],
            "stream": False,
            "options": options or {},
        }
        return await self._request("POST", "/chat", "Chat request failed", json=payload)

    async def generate_image(
        self,
        model: str,
        prompt: str,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload = {"model": model, "prompt": prompt, "options": options or {}}
        return await self._request(
            "POST", "/generate-image", "Image generation failed", json=payload
        )

    async def analyze_image(
        self,
        model: str,
        image: bytes,
        prompt: str = DEFAULT_ANALYSIS_PROMPT,
        filename: str = "image.png",
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/analyze-image",
            "Image analysis failed",
            data={"model": model, "prompt": prompt},
            files={"image": (filename, image)},
            timeout=self._analyze_timeout,
        )

    # --- event streams ---

    def chat_stream(
        self,
        model: str,
        messages: Sequence[MessageLike],
        options: dict[str, Any] | None = None,
    ) -> ChatRelay:
        """Start a streaming chat; iterate ``relay.stream()`` for events."""
        payload = {
            "model": model,
            "messages": [_message_payload(m) for m in messages],
            "stream": True,
            "options": options or {},
        }
        return ChatRelay(self._events("/chat", payload, "Failed to start chat"), model=model)

    async def chat(
        self,
        model: str,
        messages: Sequence[MessageLike],
        options: dict[str, Any] | None = None,
        on_message: Callable[[str, str, dict[str, Any]], Any] | None = None,
        on_complete: Callable[[str, dict[str, Any] | None], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> ChatComplete | ChatError:
        """Stream a chat turn, dispatching to callbacks.

        ``on_message(fragment, content, raw)`` fires for every non-empty
        content fragment. Exactly one of ``on_complete(content, raw)`` or
        ``on_error(exc)`` fires at the end. The terminal event is returned.
        """
        relay = self.chat_stream(model, messages, options)
        async with aclosing(relay.stream()) as events:
            async for event in events:
                if isinstance(event, ChatDelta):
                    if event.fragment:
                        await _call(on_message, event.fragment, event.content, event.raw)
                elif isinstance(event, ChatComplete):
                    await _call(on_complete, event.content, event.raw)
                    return event
                else:
                    await _call(on_error, StreamError(event.error))
                    return event
        raise RelayError("chat stream ended without a terminal event")

    def pull_stream(self, name: str) -> PullRelay:
        """Start a model pull; iterate ``relay.stream()`` for progress events."""
        source = self._events(
            "/models/pull", {"modelName": name}, "Failed to start model download"
        )
        return PullRelay(name, source)

    async def pull_model(
        self,
        name: str,
        on_progress: Callable[[DownloadProgress], Any] | None = None,
    ) -> dict[str, Any]:
        """Pull a model, reporting progress. Returns the terminal payload.

        Raises:
            StreamError: The pull ended with an error event.
        """
        relay = self.pull_stream(name)
        async with aclosing(relay.stream()) as events:
            async for event in events:
                if isinstance(event, PullProgress):
                    await _call(on_progress, event.progress)
                elif isinstance(event, PullCompleted):
                    return event.raw
                else:
                    raise StreamError(event.error)
        raise RelayError("pull stream ended without a terminal event")
