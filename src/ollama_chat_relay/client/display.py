"""Helpers for presenting relay data to a user."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

UNKNOWN = "Unknown"
VISION_MODEL_MARKERS = ("llava", "vision", "bakllava")
_BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


@dataclass(slots=True)
class ModelSummary:
    parameter_size: str
    format: str
    family: str


def describe_model(info: dict[str, Any]) -> ModelSummary:
    """Summarize a show-model payload; absent details read as "Unknown"."""
    details = info.get("details") or {}
    return ModelSummary(
        parameter_size=details.get("parameter_size") or UNKNOWN,
        format=details.get("format") or UNKNOWN,
        family=details.get("family") or UNKNOWN,
    )


def next_selected_model(
    models: list[dict[str, Any]],
    selected: str | None,
    deleted: str,
) -> str | None:
    """Model to select after ``deleted`` was removed from ``models``."""
    if selected != deleted:
        return selected
    remaining = [m["name"] for m in models if m.get("name") and m["name"] != deleted]
    return remaining[0] if remaining else None


def is_vision_model(name: str | None) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(marker in lowered for marker in VISION_MODEL_MARKERS)


def format_bytes(size: int | float, decimals: int = 2) -> str:
    if size <= 0:
        return "0 Bytes"
    index = 0
    while size >= 1024 and index < len(_BYTE_UNITS) - 1:
        size /= 1024
        index += 1
    return f"{round(size, max(decimals, 0)):g} {_BYTE_UNITS[index]}"
