"""Model pull relay: backend progress lines in, progress events out."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import structlog

from ollama_chat_relay.errors import BackendError, RelayError, RelayStateError
from ollama_chat_relay.relay.models import (
    DownloadProgress,
    PullCompleted,
    PullError,
    PullEvent,
    PullProgress,
)
from ollama_chat_relay.relay.state import RelayState, RelayStateMachine

if TYPE_CHECKING:
    from ollama_chat_relay.gateway.backend import OllamaBackend

logger = structlog.get_logger()

COMPLETED_STATUS = "completed"


class PullRelay:
    """Relay for one model pull.

    Yields a ``PullProgress`` per decoded line and then exactly one
    terminal event. When the backend closes the stream without a
    completed or error line, a ``PullCompleted`` is synthesized so the
    caller always sees an explicit end.
    """

    def __init__(self, model_name: str, source: AsyncIterator[dict[str, Any]]) -> None:
        self._model_name = model_name
        self._source = source
        self._machine = RelayStateMachine()
        self._progress: DownloadProgress | None = None

    @classmethod
    def for_backend(cls, backend: OllamaBackend, model_name: str) -> PullRelay:
        return cls(model_name, backend.pull_events(model_name))

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def state(self) -> RelayState:
        return self._machine.state

    @property
    def progress(self) -> DownloadProgress | None:
        """Latest progress record, or None before the first line."""
        return self._progress

    async def stream(self) -> AsyncIterator[PullEvent]:
        self._machine.start()
        logger.info("pull_start", model=self._model_name)
        exhausted = False
        try:
            async for raw in self._source:
                self._machine.advance(RelayState.STREAMING)

                if raw.get("error"):
                    yield self._fail(str(raw["error"]))
                    return

                if raw.get("status") == COMPLETED_STATUS:
                    yield self._finish(raw)
                    return

                self._progress = DownloadProgress.from_event(self._model_name, raw)
                logger.debug(
                    "pull_progress",
                    model=self._model_name,
                    status=self._progress.status,
                    percent=self._progress.percent,
                )
                yield PullProgress(progress=self._progress, raw=raw)
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
                self._machine.advance(RelayState.ERRORED)
                logger.info("pull_aborted", model=self._model_name)

        yield self._finish(None)

    async def run(self) -> PullCompleted | PullError:
        """Drain the stream and return its terminal event."""
        terminal: PullCompleted | PullError | None = None
        async for event in self.stream():
            if not isinstance(event, PullProgress):
                terminal = event
        if terminal is None:
            raise RelayStateError("pull stream ended without a terminal event")
        return terminal

    def _finish(self, raw: dict[str, Any] | None) -> PullCompleted:
        self._machine.advance(RelayState.COMPLETED)
        logger.info(
            "pull_complete",
            model=self._model_name,
            synthesized=raw is None,
        )
        if raw is None:
            return PullCompleted(model=self._model_name)
        return PullCompleted(model=self._model_name, raw=raw)

    def _fail(self, error: str) -> PullError:
        self._machine.advance(RelayState.ERRORED)
        logger.warning("pull_error", model=self._model_name, error=error)
        return PullError(model=self._model_name, error=error)

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
