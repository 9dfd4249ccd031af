"""Lifecycle shared by the chat and pull relays."""

from __future__ import annotations

from enum import Enum

from ollama_chat_relay.errors import RelayStateError


class RelayState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"


_TRANSITIONS: dict[RelayState, set[RelayState]] = {
    RelayState.IDLE: {RelayState.REQUESTING, RelayState.ERRORED},
    RelayState.REQUESTING: {RelayState.STREAMING, RelayState.COMPLETED, RelayState.ERRORED},
    RelayState.STREAMING: {RelayState.COMPLETED, RelayState.ERRORED},
    RelayState.COMPLETED: set(),
    RelayState.ERRORED: set(),
}


class RelayStateMachine:
    """Tracks one relay instance through idle -> requesting -> streaming -> done.

    Instances are single-use: once completed or errored there is no way back.
    """

    def __init__(self) -> None:
        self._state = RelayState.IDLE

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in (RelayState.COMPLETED, RelayState.ERRORED)

    def start(self) -> None:
        if self._state is not RelayState.IDLE:
            raise RelayStateError(f"relay already used (state={self._state.value})")
        self._state = RelayState.REQUESTING

    def advance(self, target: RelayState) -> None:
        if target is self._state:
            return
        if target not in _TRANSITIONS[self._state]:
            raise RelayStateError(
                f"invalid transition {self._state.value} -> {target.value}"
            )
        self._state = target
