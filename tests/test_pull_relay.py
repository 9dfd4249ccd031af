"""Tests for PullRelay progress events and terminal handling."""

import pytest

from conftest import events_from
from ollama_chat_relay.errors import BackendError, RelayStateError
from ollama_chat_relay.relay.models import (
    DownloadProgress,
    PullCompleted,
    PullError,
    PullProgress,
    compute_percent,
)
from ollama_chat_relay.relay.pull import PullRelay
from ollama_chat_relay.relay.state import RelayState


async def _collect(relay: PullRelay):
    return [event async for event in relay.stream()]


class TestComputePercent:
    def test_quarter(self):
        assert compute_percent(50, 200) == 25

    def test_zero_total_has_no_percent(self):
        assert compute_percent(50, 0) is None
        assert compute_percent(0, None) is None

    def test_rounds_half_up(self):
        assert compute_percent(1, 8) == 13  # 12.5
        assert compute_percent(5, 200) == 3  # 2.5

    def test_complete(self):
        assert compute_percent(4096, 4096) == 100


def test_progress_payload_adds_percent_only_when_known():
    raw = {"status": "pulling abc", "completed": 50, "total": 200}
    event = PullProgress(DownloadProgress.from_event("llama3", raw), raw)
    assert event.to_payload() == {**raw, "percent": 25}

    manifest = {"status": "pulling manifest"}
    event = PullProgress(DownloadProgress.from_event("llama3", manifest), manifest)
    assert event.to_payload() == manifest
    assert event.progress.percent is None
    assert event.progress.total == 0


@pytest.mark.asyncio
async def test_progress_then_synthesized_completion():
    relay = PullRelay("llama3", events_from(
        {"status": "pulling manifest"},
        {"status": "pulling 6a0746a1ec1a", "digest": "sha256:6a07", "completed": 50, "total": 200},
        {"status": "success"},
    ))

    events = await _collect(relay)

    progress = [e for e in events if isinstance(e, PullProgress)]
    assert [p.progress.status for p in progress] == [
        "pulling manifest", "pulling 6a0746a1ec1a", "success",
    ]
    assert progress[1].progress.percent == 25
    assert isinstance(events[-1], PullCompleted)
    assert events[-1].to_payload() == {"status": "completed"}
    assert relay.state is RelayState.COMPLETED
    assert relay.progress.status == "success"


@pytest.mark.asyncio
async def test_empty_stream_still_completes():
    events = await _collect(PullRelay("tiny", events_from()))
    assert len(events) == 1
    assert isinstance(events[0], PullCompleted)


@pytest.mark.asyncio
async def test_explicit_completed_line_is_terminal():
    relay = PullRelay("m", events_from({"status": "completed"}, {"status": "ignored"}))
    events = await _collect(relay)
    assert len(events) == 1
    assert isinstance(events[0], PullCompleted)


@pytest.mark.asyncio
async def test_error_line_discards_remaining_output():
    relay = PullRelay("missing", events_from(
        {"status": "pulling manifest"},
        {"error": "pull model manifest: file does not exist"},
        {"status": "success"},
    ))
    events = await _collect(relay)

    assert isinstance(events[-1], PullError)
    assert events[-1].to_payload() == {"error": "pull model manifest: file does not exist"}
    assert len(events) == 2
    assert relay.state is RelayState.ERRORED


@pytest.mark.asyncio
async def test_transport_failure_becomes_error_event():
    async def source():
        yield {"status": "pulling manifest"}
        raise BackendError("pull model failed", details="connection refused")

    events = await _collect(PullRelay("m", source()))
    assert isinstance(events[-1], PullError)
    assert events[-1].error == "connection refused"


@pytest.mark.asyncio
async def test_abandoned_pull_closes_source():
    closed = []

    async def source():
        try:
            while True:
                yield {"status": "downloading", "completed": 1, "total": 10}
        finally:
            closed.append(True)

    relay = PullRelay("big", source())
    stream = relay.stream()
    await stream.__anext__()
    await stream.aclose()

    assert closed == [True]
    assert relay.state is RelayState.ERRORED


@pytest.mark.asyncio
async def test_run_without_terminal_event_raises_state_error(monkeypatch):
    relay = PullRelay("m", events_from({"status": "pulling manifest"}))

    async def progress_only():
        progress = DownloadProgress.from_event("m", {"status": "pulling manifest"})
        yield PullProgress(progress=progress, raw={"status": "pulling manifest"})

    monkeypatch.setattr(relay, "stream", progress_only)
    with pytest.raises(RelayStateError, match="without a terminal event"):
        await relay.run()
