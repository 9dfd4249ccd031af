"""Tests for chunk framing: line decoding, NDJSON and event-stream codecs."""

import itertools

import pytest

from conftest import chunked, ndjson
from ollama_chat_relay.relay.framing import (
    LineDecoder,
    SSEDecoder,
    encode_sse,
    iter_json_lines,
    iter_sse_events,
)


async def _collect(gen):
    return [item async for item in gen]


BACKEND_OUTPUT = (
    b'{"message":{"content":"Hel"}}\n'
    b"\n"
    b"not json at all\n"
    b'{"message":{"content":"lo \xc3\xa9t\xc3\xa9"}}\r\n'
    b'{"done":true,"eval_count":12}'
)

EXPECTED_EVENTS = [
    {"message": {"content": "Hel"}},
    {"message": {"content": "lo été"}},
    {"done": True, "eval_count": 12},
]


class TestLineDecoder:
    def test_emits_complete_lines_and_keeps_partial(self):
        decoder = LineDecoder()
        assert decoder.feed(b'{"a":1}\n{"b"') == ['{"a":1}']
        assert decoder.pending == '{"b"'
        assert decoder.feed(b":2}\n") == ['{"b":2}']
        assert decoder.pending == ""

    def test_discards_blank_lines(self):
        decoder = LineDecoder()
        assert decoder.feed(b"\n\n  \nx\n\n") == ["x"]

    def test_strips_carriage_returns(self):
        decoder = LineDecoder()
        assert decoder.feed(b"one\r\ntwo\r\n") == ["one", "two"]

    def test_flush_returns_unterminated_tail(self):
        decoder = LineDecoder()
        decoder.feed(b"first\nsecond")
        assert decoder.flush() == ["second"]
        assert decoder.flush() == []

    def test_multibyte_character_split_across_chunks(self):
        decoder = LineDecoder()
        encoded = "café\n".encode("utf-8")
        assert decoder.feed(encoded[:4]) == []
        assert decoder.feed(encoded[4:]) == ["café"]


class TestIterJsonLines:
    @pytest.mark.asyncio
    async def test_skips_malformed_and_non_object_lines(self):
        data = ndjson({"a": 1}) + b"{broken\n[1, 2]\n42\n" + ndjson({"b": 2})
        assert await _collect(iter_json_lines(chunked(data))) == [{"a": 1}, {"b": 2}]

    @pytest.mark.asyncio
    async def test_decodes_final_line_without_newline(self):
        events = await _collect(iter_json_lines(chunked(b'{"done": true}')))
        assert events == [{"done": True}]

    @pytest.mark.asyncio
    async def test_single_chunk(self):
        events = await _collect(iter_json_lines(chunked(BACKEND_OUTPUT)))
        assert events == EXPECTED_EVENTS

    @pytest.mark.asyncio
    async def test_independent_of_chunk_boundaries(self):
        """Every way of cutting the output into three chunks decodes the same."""
        size = len(BACKEND_OUTPUT)
        for i, j in itertools.combinations_with_replacement(range(size + 1), 2):
            parts = (BACKEND_OUTPUT[:i], BACKEND_OUTPUT[i:j], BACKEND_OUTPUT[j:])
            events = await _collect(iter_json_lines(chunked(*parts)))
            assert events == EXPECTED_EVENTS, f"split at {i}, {j}"

    @pytest.mark.asyncio
    async def test_byte_at_a_time(self):
        parts = [BACKEND_OUTPUT[i:i + 1] for i in range(len(BACKEND_OUTPUT))]
        assert await _collect(iter_json_lines(chunked(*parts))) == EXPECTED_EVENTS


class TestEventStream:
    def test_encode_sse_framing(self):
        assert encode_sse({"status": "completed"}) == b'data: {"status": "completed"}\n\n'

    def test_decoder_ignores_non_data_lines(self):
        decoder = SSEDecoder()
        events = decoder.feed(
            b": keep-alive comment\n"
            b"event: message\n"
            b'data: {"a": 1}\n\n'
            b"data: not-json\n\n"
            b'data:{"b": 2}\n\n'
        )
        assert events == [{"a": 1}, {"b": 2}]

    @pytest.mark.asyncio
    async def test_encode_decode_across_split_chunks(self):
        body = b"".join(encode_sse(e) for e in EXPECTED_EVENTS)
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]
        assert await _collect(iter_sse_events(chunked(*parts))) == EXPECTED_EVENTS
