"""Chat stream relay: backend chat lines in, accumulated client events out."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import structlog

from ollama_chat_relay.errors import BackendError, RelayError, RelayStateError
from ollama_chat_relay.relay.models import (
    ChatComplete,
    ChatDelta,
    ChatError,
    ChatEvent,
    ChatMetadata,
    ChatRequest,
)
from ollama_chat_relay.relay.reasoning import ReasoningBuffer
from ollama_chat_relay.relay.state import RelayState, RelayStateMachine

if TYPE_CHECKING:
    from ollama_chat_relay.gateway.backend import OllamaBackend

logger = structlog.get_logger()


class ChatRelay:
    """Relay for one chat turn.

    Consumes decoded stream events from ``source`` (the backend's NDJSON
    lines, or the relay's own event stream on the client side) and turns
    each line into one ``ChatDelta``, even when it changes nothing, so
    the line can be forwarded as is. Exactly one terminal ``ChatComplete``
    or ``ChatError`` follows. The answer, reasoning and metadata
    accumulators belong to this instance alone, and the instance can
    only be streamed once.
    """

    def __init__(
        self,
        source: AsyncIterator[dict[str, Any]],
        model: str | None = None,
    ) -> None:
        self._source = source
        self._model = model
        self._machine = RelayStateMachine()
        self._parts: list[str] = []
        self._reasoning = ReasoningBuffer()
        self._metadata = ChatMetadata()
        self._event_count = 0

    @classmethod
    def for_backend(cls, backend: OllamaBackend, request: ChatRequest) -> ChatRelay:
        """Relay a streaming chat request to the backend."""
        source = backend.chat_events(
            model=request.model,
            messages=request.backend_messages(),
            options=request.options.to_backend(),
        )
        return cls(source, model=request.model)

    @property
    def state(self) -> RelayState:
        return self._machine.state

    @property
    def content(self) -> str:
        return "".join(self._parts)

    @property
    def reasoning(self) -> str:
        return self._reasoning.text

    @property
    def metadata(self) -> ChatMetadata:
        return self._metadata

    async def stream(self) -> AsyncIterator[ChatEvent]:
        """Yield chat events until the first terminal event."""
        self._machine.start()
        logger.info("chat_stream_start", model=self._model)
        exhausted = False
        try:
            async for raw in self._source:
                self._machine.advance(RelayState.STREAMING)
                self._event_count += 1

                if raw.get("error"):
                    yield self._fail(str(raw["error"]))
                    return

                delta, changed = self._apply(raw)
                if raw.get("done"):
                    if changed:
                        yield delta
                    yield self._finish(raw, forwarded=changed)
                    return
                yield delta
            exhausted = True
        except BackendError as e:
            yield self._fail(e.details)
            return
        except RelayError as e:
            yield self._fail(str(e))
            return
        finally:
            await self._close_source()
            if not exhausted and not self._machine.finished:
                # Consumer stopped reading, or an unexpected failure escaped
                self._machine.advance(RelayState.ERRORED)
                logger.info("chat_stream_aborted", model=self._model)

        yield self._finish(None)

    async def run(self) -> ChatComplete | ChatError:
        """Drain the stream and return its terminal event."""
        terminal: ChatComplete | ChatError | None = None
        async for event in self.stream():
            if not isinstance(event, ChatDelta):
                terminal = event
        if terminal is None:
            raise RelayStateError("chat stream ended without a terminal event")
        return terminal

    def _apply(self, raw: dict[str, Any]) -> tuple[ChatDelta, bool]:
        """Fold one line into the accumulators; the flag says whether it changed them."""
        message = raw.get("message") or {}
        fragment = message.get("content") or ""
        if fragment:
            self._parts.append(fragment)
        matches = self._reasoning.add(fragment, raw) if message else []

        changed = bool(fragment or matches)
        if changed:
            logger.debug(
                "chat_delta",
                event_number=self._event_count,
                fragment_length=len(fragment),
                reasoning_rules=[m.rule for m in matches],
            )
        delta = ChatDelta(
            fragment=fragment,
            content=self.content,
            reasoning=self.reasoning,
            raw=raw,
        )
        return delta, changed

    def _finish(self, raw: dict[str, Any] | None, forwarded: bool = False) -> ChatComplete:
        self._metadata = ChatMetadata.from_event(raw)
        self._machine.advance(RelayState.COMPLETED)
        logger.info(
            "chat_stream_complete",
            model=self._model,
            events_received=self._event_count,
            answer_length=len(self.content),
            has_reasoning=bool(self._reasoning),
            tokens=self._metadata.tokens,
            explicit_done=raw is not None,
        )
        return ChatComplete(
            content=self.content,
            reasoning=self.reasoning,
            metadata=self._metadata,
            raw=raw,
            forwarded=forwarded,
        )

    def _fail(self, error: str) -> ChatError:
        self._machine.advance(RelayState.ERRORED)
        logger.warning(
            "chat_stream_error",
            model=self._model,
            error=error,
            events_received=self._event_count,
        )
        return ChatError(error=error, content=self.content)

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
