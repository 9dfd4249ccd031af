"""HTTP gateway to the Ollama model-serving backend."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog

from ollama_chat_relay.errors import BackendError
from ollama_chat_relay.relay.framing import iter_json_lines

logger = structlog.get_logger()


def _error_detail(response: httpx.Response) -> str:
    """Backend error text: the ``error`` field when JSON, else the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text


class OllamaBackend:
    """Async client for the backend's REST API.

    Bounded calls (list, delete, show, generate, non-streaming chat) use
    the configured timeout. Streaming calls (pull, streaming chat) run
    with no timeout and are async generators: closing the generator
    closes the underlying response.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        client = await self._get_http_client()
        try:
            response = await client.request(method, path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error(
                "backend_request_failed",
                operation=operation,
                status=e.response.status_code,
                error=detail,
            )
            raise BackendError(
                f"{operation} failed", status=e.response.status_code, details=detail
            ) from e
        except httpx.HTTPError as e:
            logger.error("backend_request_failed", operation=operation, error=str(e))
            raise BackendError(f"{operation} failed", details=str(e)) from e

        if not response.content:
            return {}
        return response.json()

    async def _stream_events(
        self,
        path: str,
        operation: str,
        payload: dict[str, Any],
    ) -> AsyncIterator[dict[str, Any]]:
        client = await self._get_http_client()
        try:
            async with client.stream("POST", path, json=payload, timeout=None) as response:
                if response.is_error:
                    await response.aread()
                    detail = _error_detail(response)
                    logger.error(
                        "backend_stream_rejected",
                        operation=operation,
                        status=response.status_code,
                        error=detail,
                    )
                    raise BackendError(
                        f"{operation} failed", status=response.status_code, details=detail
                    )
                async for event in iter_json_lines(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as e:
            logger.error("backend_stream_failed", operation=operation, error=str(e))
            raise BackendError(f"{operation} failed", details=str(e)) from e

    async def list_models(self) -> dict[str, Any]:
        """GET /api/tags. The ``models`` key is always present."""
        data = await self._request("GET", "/api/tags", "list models")
        data["models"] = data.get("models") or []
        return data

    def pull_events(self, name: str) -> AsyncIterator[dict[str, Any]]:
        """Stream decoded progress lines from POST /api/pull."""
        return self._stream_events("/api/pull", "pull model", {"name": name})

    async def delete_model(self, name: str) -> dict[str, Any]:
        return await self._request("DELETE", "/api/delete", "delete model", {"name": name})

    async def show_model(self, name: str) -> dict[str, Any]:
        return await self._request("POST", "/api/show", "show model", {"name": name})

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Single-shot chat; the backend response is returned unchanged."""
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": options,
        }
        return await self._request("POST", "/api/chat", "chat", payload)

    def chat_events(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream decoded chat lines from POST /api/chat."""
        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
            "options": options,
        }
        return self._stream_events("/api/chat", "chat", payload)

    async def generate(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Single-shot POST /api/generate (streaming is always disabled)."""
        return await self._request(
            "POST", "/api/generate", "generate", {**payload, "stream": False}
        )

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
