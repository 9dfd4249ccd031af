"""Request schemas and stream event records for the chat and pull relays."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_K = 40
DEFAULT_TOP_P = 0.9


class Message(BaseModel):
    """One conversation turn. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str
    images: list[str] | None = Field(
        default=None, description="Base64-encoded images attached to this turn",
    )


class ChatOptions(BaseModel):
    """Generation options. Unknown keys are forwarded to the backend untouched."""

    model_config = ConfigDict(extra="allow")

    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None

    def to_backend(self) -> dict[str, Any]:
        """Backend options with the relay defaults filled in for missing values."""
        options = self.model_dump(exclude_none=True)
        options.setdefault("temperature", DEFAULT_TEMPERATURE)
        options.setdefault("top_k", DEFAULT_TOP_K)
        options.setdefault("top_p", DEFAULT_TOP_P)
        return options


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model: str = Field(..., min_length=1)
    messages: list[Message] = Field(..., min_length=1)
    stream: bool = True
    options: ChatOptions = Field(default_factory=ChatOptions)

    def backend_messages(self) -> list[dict[str, Any]]:
        return [m.model_dump(exclude_none=True) for m in self.messages]


class PullRequest(BaseModel):
    """Body of ``POST /api/models/pull``."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    model_name: str = Field(..., alias="modelName", min_length=1)


# --- chat stream events ---


@dataclass(slots=True)
class ChatMetadata:
    """Usage figures reported on the final chat line. Absent values are 0."""

    tokens: int = 0
    eval_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0

    @classmethod
    def from_event(cls, raw: dict[str, Any] | None) -> ChatMetadata:
        raw = raw or {}
        return cls(
            tokens=raw.get("eval_count") or 0,
            eval_duration=raw.get("eval_duration") or 0,
            prompt_eval_count=raw.get("prompt_eval_count") or 0,
            prompt_eval_duration=raw.get("prompt_eval_duration") or 0,
        )


@dataclass(slots=True)
class ChatDelta:
    """An incremental fragment plus the accumulated state after applying it."""

    fragment: str
    content: str
    reasoning: str
    raw: dict[str, Any]

    def to_payload(self) -> dict[str, Any] | None:
        return self.raw


@dataclass(slots=True)
class ChatComplete:
    """Terminal success.

    ``raw`` is None when the stream closed without ``done``. ``forwarded``
    is set when the ``done`` line also carried content and already went
    out as the last ``ChatDelta``; it is not written a second time.
    """

    content: str
    reasoning: str
    metadata: ChatMetadata
    raw: dict[str, Any] | None = None
    forwarded: bool = False

    def to_payload(self) -> dict[str, Any] | None:
        if self.forwarded:
            return None
        return self.raw


@dataclass(slots=True)
class ChatError:
    """Terminal failure. Nothing follows it."""

    error: str
    content: str = ""

    def to_payload(self) -> dict[str, Any] | None:
        return {"error": self.error}


ChatEvent = ChatDelta | ChatComplete | ChatError


# --- pull stream events ---


def compute_percent(completed: int | float | None, total: int | float | None) -> int | None:
    """Download percentage rounded half-up, or None when the total is unknown."""
    if not total or total <= 0:
        return None
    return math.floor((completed or 0) / total * 100 + 0.5)


@dataclass(slots=True)
class DownloadProgress:
    """Latest known progress for one model pull. Replaced, never appended."""

    model: str
    status: str
    completed: int = 0
    total: int = 0
    percent: int | None = None

    @classmethod
    def from_event(cls, model: str, raw: dict[str, Any]) -> DownloadProgress:
        completed = raw.get("completed") or 0
        total = raw.get("total") or 0
        return cls(
            model=model,
            status=raw.get("status") or "Downloading...",
            completed=completed,
            total=total,
            percent=compute_percent(completed, total),
        )


@dataclass(slots=True)
class PullProgress:
    progress: DownloadProgress
    raw: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any] | None:
        payload = dict(self.raw)
        if self.progress.percent is not None:
            payload["percent"] = self.progress.percent
        return payload


@dataclass(slots=True)
class PullCompleted:
    model: str
    raw: dict[str, Any] = field(default_factory=lambda: {"status": "completed"})

    def to_payload(self) -> dict[str, Any] | None:
        return self.raw


@dataclass(slots=True)
class PullError:
    model: str
    error: str

    def to_payload(self) -> dict[str, Any] | None:
        return {"error": self.error}


PullEvent = PullProgress | PullCompleted | PullError
