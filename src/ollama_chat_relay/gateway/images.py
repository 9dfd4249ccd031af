"""Single-shot image generation and analysis forwarding."""

from __future__ import annotations

import base64
import random
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ollama_chat_relay.gateway.backend import OllamaBackend

logger = structlog.get_logger()

RANDOM_SEED = -1
MAX_SEED = 999_999
DEFAULT_ANALYSIS_PROMPT = "Describe this image in detail."


class ImageOptions(BaseModel):
    """Generation options. ``seed=-1`` asks for a random seed."""

    model_config = ConfigDict(extra="allow")

    seed: int = RANDOM_SEED
    steps: int = Field(50, ge=1)
    cfg_scale: float = Field(7.5, gt=0)
    width: int = Field(512, ge=64)
    height: int = Field(512, ge=64)

    def to_backend(self) -> dict[str, Any]:
        options = self.model_dump()
        if options["seed"] == RANDOM_SEED:
            options["seed"] = random.randint(0, MAX_SEED)
        return options


class GenerateImageRequest(BaseModel):
    """Body of ``POST /api/generate-image``."""

    model: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    options: ImageOptions = Field(default_factory=ImageOptions)


class ImageTooLargeError(ValueError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Image is {size} bytes, limit is {limit} bytes")
        self.size = size
        self.limit = limit


async def generate_image(
    backend: OllamaBackend,
    request: GenerateImageRequest,
) -> dict[str, Any]:
    options = request.options.to_backend()
    logger.info(
        "image_generate_start",
        model=request.model,
        seed=options["seed"],
        size=f"{options['width']}x{options['height']}",
    )
    return await backend.generate(
        {"model": request.model, "prompt": request.prompt, "options": options}
    )


async def analyze_image(
    backend: OllamaBackend,
    model: str,
    image: bytes,
    prompt: str | None = None,
    max_bytes: int = 10_485_760,
) -> dict[str, Any]:
    """Send one image to a vision model and return the backend's answer.

    Raises:
        ValueError: The image is empty.
        ImageTooLargeError: The image exceeds ``max_bytes``.
    """
    if not image:
        raise ValueError("Image file is empty")
    if len(image) > max_bytes:
        raise ImageTooLargeError(len(image), max_bytes)

    logger.info("image_analyze_start", model=model, image_bytes=len(image))
    return await backend.generate(
        {
            "model": model,
            "prompt": prompt or DEFAULT_ANALYSIS_PROMPT,
            "images": [base64.b64encode(image).decode("ascii")],
        }
    )
