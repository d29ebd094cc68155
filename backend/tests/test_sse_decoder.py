"""Tests for the incremental SSE decoder."""

import json
import random

import pytest

from planchat.planning.sse import SSEDecoder, iter_sse_payloads, parse_frame


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


async def _collect(chunks):
    return [payload async for payload in iter_sse_payloads(_aiter(chunks))]


STREAM = (
    'data: {"conversation_id":"modal-1","phase":"starting","message":""}\n\n'
    'data: {"phase":"analyzing","message":"Scanning","icon":"code","elapsed":1.5}\n\n'
    'data: {"content":"Here is "}\n\n'
    'data: {"chunk":"a plan \\u2014 caf\\u00e9"}\n\n'
    'data: {"content":"with unicode: café ✓"}\n\n'
    'data: {"recommendations":{"tasks":[{"title":"Add form"}]},"ready_for_approval":true,"done":true}\n\n'
)


def _expected():
    return [json.loads(line[len("data: "):]) for line in STREAM.split("\n") if line.startswith("data: ")]


class TestParseFrame:

    def test_single_data_line(self):
        assert parse_frame('data: {"a": 1}') == [{"a": 1}]

    def test_multiple_data_lines_parse_independently(self):
        assert parse_frame('data: {"a": 1}\ndata: {"b": 2}') == [{"a": 1}, {"b": 2}]

    def test_non_data_lines_are_ignored(self):
        assert parse_frame(': keepalive\nevent: message\nid: 3\ndata: {"a": 1}') == [{"a": 1}]

    def test_malformed_json_is_dropped(self):
        assert parse_frame("data: {not json}") == []

    def test_non_object_json_is_dropped(self):
        assert parse_frame('data: [1, 2]\ndata: "text"\ndata: [DONE]') == []


class TestSSEDecoder:

    def test_incomplete_frame_is_buffered(self):
        decoder = SSEDecoder()
        assert decoder.feed('data: {"content":') == []
        assert decoder.pending == 'data: {"content":'
        assert decoder.feed('"hi"}\n\n') == [{"content": "hi"}]
        assert decoder.pending == ""

    def test_split_inside_prefix_is_reassembled(self):
        decoder = SSEDecoder()
        assert decoder.feed("dat") == []
        assert decoder.feed('a: {"content":"hi"}\n\n') == [{"content": "hi"}]

    def test_split_separator(self):
        decoder = SSEDecoder()
        assert decoder.feed('data: {"a":1}\n') == []
        assert decoder.feed('\ndata: {"b":2}\n\n') == [{"a": 1}, {"b": 2}]

    def test_malformed_frame_does_not_stop_decoding(self):
        decoder = SSEDecoder()
        payloads = decoder.feed('data: {not json}\n\ndata: {"content":"ok"}\n\n')
        assert payloads == [{"content": "ok"}]

    def test_crlf_separators(self):
        decoder = SSEDecoder()
        assert decoder.feed('data: {"a":1}\r\n\r') == []
        assert decoder.feed('\ndata: {"b":2}\r\n\r\n') == [{"a": 1}, {"b": 2}]

    def test_flush_parses_unterminated_tail(self):
        decoder = SSEDecoder()
        assert decoder.feed('data: {"done":true}') == []
        assert decoder.flush() == [{"done": True}]
        assert decoder.flush() == []

    def test_flush_drops_truncated_payload(self):
        decoder = SSEDecoder()
        decoder.feed('data: {"content": "trunc')
        assert decoder.flush() == []


class TestIterSsePayloads:

    @pytest.mark.asyncio
    async def test_single_chunk(self):
        assert await _collect([STREAM.encode()]) == _expected()

    @pytest.mark.asyncio
    async def test_byte_by_byte(self):
        data = STREAM.encode()
        chunks = [data[i:i + 1] for i in range(len(data))]
        assert await _collect(chunks) == _expected()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(10))
    async def test_random_split_points(self, seed):
        """Splitting at arbitrary byte boundaries yields the same payloads."""
        rng = random.Random(seed)
        data = STREAM.encode()
        cuts = sorted(rng.sample(range(1, len(data)), rng.randint(1, 25)))
        chunks = [data[a:b] for a, b in zip([0, *cuts], [*cuts, len(data)])]

        assert await _collect(chunks) == _expected()

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_chunks(self):
        data = 'data: {"content":"café"}\n\n'.encode()
        cut = data.index("é".encode()) + 1
        assert await _collect([data[:cut], data[cut:]]) == [{"content": "café"}]

    @pytest.mark.asyncio
    async def test_text_chunks_are_accepted(self):
        assert await _collect(['data: {"a"', ":1}\n\n"]) == [{"a": 1}]

    @pytest.mark.asyncio
    async def test_residual_frame_emitted_at_end(self):
        assert await _collect([b'data: {"content":"ok"}\n\ndata: {"done":true}']) == [
            {"content": "ok"},
            {"done": True},
        ]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await _collect([]) == []
