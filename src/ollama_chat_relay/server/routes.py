"""Client-facing HTTP handlers."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, TypeVar

import structlog
from aiohttp import web
from pydantic import BaseModel, ValidationError

from ollama_chat_relay.config import Settings
from ollama_chat_relay.errors import BackendError
from ollama_chat_relay.gateway.backend import OllamaBackend
from ollama_chat_relay.gateway.images import (
    GenerateImageRequest,
    ImageTooLargeError,
    analyze_image,
    generate_image,
)
from ollama_chat_relay.relay.chat import ChatRelay
from ollama_chat_relay.relay.models import ChatRequest, PullRequest
from ollama_chat_relay.relay.pull import PullRelay
from ollama_chat_relay.server.sse import EventStreamWriter

logger = structlog.get_logger()

routes = web.RouteTableDef()

ModelT = TypeVar("ModelT", bound=BaseModel)


def _backend(request: web.Request) -> OllamaBackend:
    return request.app["backend"]


def _settings(request: web.Request) -> Settings:
    return request.app["settings"]


def _bad_request(message: str, details: Any = None) -> web.HTTPBadRequest:
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return web.HTTPBadRequest(text=json.dumps(body), content_type="application/json")


def _backend_failure(message: str, error: BackendError) -> web.Response:
    return web.json_response({"error": message, "details": error.details}, status=500)


async def _read_model(request: web.Request, model: type[ModelT], message: str) -> ModelT:
    """Parse and validate a JSON body, rejecting it before any backend call."""
    try:
        body = await request.json()
    except ValueError:
        raise _bad_request(message, "Request body must be valid JSON")
    if not isinstance(body, dict):
        raise _bad_request(message, "Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        logger.info("request_rejected", path=request.path, errors=e.error_count())
        raise _bad_request(
            message, e.errors(include_url=False, include_context=False, include_input=False)
        )


async def _pipe_events(
    request: web.Request,
    events: AsyncIterator[Any],
    operation: str,
) -> web.StreamResponse:
    """Forward relay events to the client as an event stream.

    Reading stops as soon as the client disconnects; leaving the
    ``aclosing`` block closes the relay and with it the backend stream.
    """
    writer = EventStreamWriter(request)
    await writer.prepare()
    async with aclosing(events) as stream:
        try:
            async for event in stream:
                payload = event.to_payload()
                if payload is None:
                    continue
                if not await writer.send(payload):
                    break
        except Exception as e:
            logger.exception("relay_stream_failed", operation=operation)
            await writer.send({"error": str(e)})
    return await writer.close()


@routes.get("/api/health")
async def health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.json_response({"status": "ok", "message": "Ollama Chat API is running"})


@routes.get("/api/models")
async def list_models(request: web.Request) -> web.Response:
    try:
        data = await _backend(request).list_models()
    except BackendError as e:
        return _backend_failure("Failed to fetch models", e)
    return web.json_response(data)


@routes.post("/api/models/pull")
async def pull_model(request: web.Request) -> web.StreamResponse:
    pull = await _read_model(request, PullRequest, "Model name is required")
    relay = PullRelay.for_backend(_backend(request), pull.model_name)
    return await _pipe_events(request, relay.stream(), "pull")


@routes.delete("/api/models/{name:.+}")
async def delete_model(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    try:
        await _backend(request).delete_model(name)
    except BackendError as e:
        return _backend_failure("Failed to delete model", e)
    logger.info("model_deleted", model=name)
    return web.json_response({"message": f"Model {name} deleted successfully"})


@routes.get("/api/models/{name:.+}/info")
async def model_info(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    try:
        data = await _backend(request).show_model(name)
    except BackendError as e:
        return _backend_failure("Failed to fetch model info", e)
    return web.json_response(data)


@routes.post("/api/chat")
async def chat(request: web.Request) -> web.StreamResponse:
    chat_request = await _read_model(request, ChatRequest, "Model and messages are required")
    backend = _backend(request)

    if chat_request.stream:
        relay = ChatRelay.for_backend(backend, chat_request)
        return await _pipe_events(request, relay.stream(), "chat")

    try:
        data = await backend.chat(
            chat_request.model,
            chat_request.backend_messages(),
            chat_request.options.to_backend(),
        )
    except BackendError as e:
        return _backend_failure("Chat request failed", e)
    return web.json_response(data)


@routes.post("/api/generate-image")
async def generate_image_handler(request: web.Request) -> web.Response:
    image_request = await _read_model(
        request, GenerateImageRequest, "Model and prompt are required"
    )
    try:
        data = await generate_image(_backend(request), image_request)
    except BackendError as e:
        return _backend_failure("Image generation failed", e)
    return web.json_response(data)


@routes.post("/api/analyze-image")
async def analyze_image_handler(request: web.Request) -> web.Response:
    form = await request.post()
    model = form.get("model")
    image_field = form.get("image")

    if not model or not isinstance(image_field, web.FileField):
        raise _bad_request("Model and image file are required")

    image = image_field.file.read()
    prompt = form.get("prompt")
    try:
        data = await analyze_image(
            _backend(request),
            model=str(model),
            image=image,
            prompt=str(prompt) if prompt else None,
            max_bytes=_settings(request).max_image_bytes,
        )
    except ImageTooLargeError as e:
        return web.json_response({"error": "Image too large", "details": str(e)}, status=413)
    except ValueError as e:
        raise _bad_request("Model and image file are required", str(e))
    except BackendError as e:
        return _backend_failure("Image analysis failed", e)
    return web.json_response(data)
