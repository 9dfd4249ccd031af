"""Best-effort extraction of a "reasoning" trace from chat deltas.

This is a heuristic with no precision guarantee. Rules run in a fixed
order and are not exclusive: a delta can match several of them, and
text is never removed from the answer. When a backend sends both an
explicit reasoning field and inline markers, the same text is counted
twice; no dedup is attempted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

THINKING_MARKER = "thinking:"
THINKING_PATTERN = re.compile(r"thinking:(.*?)(?:\n|$)", re.IGNORECASE)
DISCOURSE_MARKERS = ("Let me think", "I need to", "First,")

# Separator appended after each contribution, per rule.
_SEPARATORS = {"explicit": "", "marker": "\n", "discourse": " "}


@dataclass(slots=True, frozen=True)
class ReasoningMatch:
    rule: Literal["explicit", "marker", "discourse"]
    text: str


def extract_reasoning(fragment: str, raw: dict[str, Any]) -> list[ReasoningMatch]:
    """Apply the trigger rules to one delta, in order."""
    matches: list[ReasoningMatch] = []
    message = raw.get("message") or {}

    explicit = message.get("reasoning") or message.get("thinking")
    if explicit:
        matches.append(ReasoningMatch("explicit", explicit))

    content = message.get("content") or ""
    if THINKING_MARKER in content:
        found = THINKING_PATTERN.search(content)
        if found and found.group(1).strip():
            matches.append(ReasoningMatch("marker", found.group(1).strip()))

    if fragment and any(marker in fragment for marker in DISCOURSE_MARKERS):
        matches.append(ReasoningMatch("discourse", fragment))

    return matches


class ReasoningBuffer:
    """Running concatenation of reasoning contributions for one chat turn."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def add(self, fragment: str, raw: dict[str, Any]) -> list[ReasoningMatch]:
        matches = extract_reasoning(fragment, raw)
        for match in matches:
            self._parts.append(match.text + _SEPARATORS[match.rule])
        return matches

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __bool__(self) -> bool:
        return bool(self._parts)
