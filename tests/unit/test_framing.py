"""Test line framing, batching and decoding stages."""

import io
import json
import random

import pytest

from login_metrics.core.exceptions import MalformedRecord, SourceUnavailable
from login_metrics.services.log_processor import (
    Batcher,
    BatchParser,
    LineFramer,
    decode_line,
    read_chunks,
)

SAMPLE = (
    b'{"event": "login", "user_id": "u1", "timestamp": "2024-01-01T00:00:00Z"}\n'
    b"\n"
    b'{"event": "open_app", "user_id": "u2", "timestamp": "2024-01-01T01:00:00Z"}\r\n'
    b"   \n"
    b"not json at all\n"
    b'{"event": "set_role", "role_id": "mage", "timestamp": "2024-01-02T00:00:00Z"}'
)


def frame(chunks: list[bytes]) -> list[bytes]:
    framer = LineFramer()
    lines = []
    for chunk in chunks:
        lines.extend(framer.feed(chunk))
    lines.extend(framer.flush())
    return lines


def split_at(data: bytes, cuts: list[int]) -> list[bytes]:
    bounds = [0, *sorted(cuts), len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


class TestLineFramer:
    """Test reassembly of lines across chunks."""

    def test_single_chunk(self):
        """Blank lines are dropped and the unterminated tail is kept."""
        lines = frame([SAMPLE])
        assert len(lines) == 4
        assert lines[-1].startswith(b'{"event": "set_role"')
        assert lines[2] == b"not json at all"

    def test_tail_is_held_until_flush(self):
        framer = LineFramer()
        assert framer.feed(b'{"a": 1}\n{"b"') == [b'{"a": 1}']
        assert framer.feed(b": 2}") == []
        assert framer.flush() == [b'{"b": 2}']
        assert framer.flush() == []

    def test_blank_tail_is_dropped(self):
        assert frame([b"line\n", b"  \t "]) == [b"line"]

    def test_empty_input(self):
        assert frame([]) == []
        assert frame([b""]) == []

    def test_newline_split_from_line(self):
        assert frame([b"abc", b"\n", b"def", b"\n"]) == [b"abc", b"def"]

    def test_multibyte_character_split_across_chunks(self):
        """Chunks may cut a UTF-8 character in half."""
        data = '{"user_id": "ünïcödé"}\n'.encode("utf-8")
        assert frame(split_at(data, [14])) == [data.rstrip(b"\n")]

    @pytest.mark.parametrize("seed", range(10))
    def test_arbitrary_chunking_gives_same_lines(self, seed: int):
        """Re-splitting the source anywhere yields the same lines."""
        rng = random.Random(seed)
        cuts = [rng.randrange(len(SAMPLE) + 1) for _ in range(rng.randrange(1, 40))]
        assert frame(split_at(SAMPLE, cuts)) == frame([SAMPLE])

    def test_byte_at_a_time(self):
        assert frame([SAMPLE[i:i + 1] for i in range(len(SAMPLE))]) == frame([SAMPLE])


class TestBatcher:
    """Test fixed-size grouping."""

    def test_full_batches_and_remainder(self):
        batcher = Batcher(batch_size=3)
        full = batcher.add([b"1", b"2", b"3", b"4", b"5", b"6", b"7"])
        assert full == [[b"1", b"2", b"3"], [b"4", b"5", b"6"]]
        assert batcher.flush() == [b"7"]
        assert batcher.flush() is None

    def test_accumulates_across_calls(self):
        batcher = Batcher(batch_size=2)
        assert batcher.add([b"1"]) == []
        assert batcher.add([b"2", b"3"]) == [[b"1", b"2"]]
        assert batcher.flush() == [b"3"]

    def test_exact_multiple_has_no_remainder(self):
        batcher = Batcher(batch_size=2)
        assert len(batcher.add([b"1", b"2", b"3", b"4"])) == 2
        assert batcher.flush() is None

    def test_default_batch_size(self):
        assert Batcher().batch_size == 100_000

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            Batcher(batch_size=0)


class TestDecoding:
    """Test line decoding and the parser stage."""

    def test_decode_full_record(self):
        event = decode_line(
            b'{"event": "login", "user_id": "u1", "device_id": "d1", '
            b'"timestamp": "2024-01-01T00:00:00Z", "extra": 5}'
        )
        assert event.event == "login"
        assert event.user_id == "u1"
        assert event.device_id == "d1"
        assert event.role_id is None

    @pytest.mark.parametrize(
        "line",
        [
            b"not json",
            b'{"event": "login"',
            b"[1, 2, 3]",
            b"42",
            b'{"user_id": "u1", "timestamp": "2024-01-01"}',
            b'{"event": "login", "user_id": "u1"}',
            b'{"event": "login", "user_id": 7, "timestamp": "2024-01-01"}',
        ],
    )
    def test_malformed(self, line: bytes):
        with pytest.raises(MalformedRecord):
            decode_line(line)

    def test_unparseable_timestamp_still_decodes(self):
        """Timestamps are checked by the engine, not the decoder."""
        assert decode_line(b'{"event": "login", "timestamp": "garbage"}').timestamp == "garbage"

    def test_parser_counts_errors_cumulatively(self):
        parser = BatchParser()
        good = json.dumps({"event": "login", "timestamp": "2024-01-01"}).encode()

        first = parser.parse([good, b"bad", good])
        assert len(first.events) == 2
        assert first.error_count == 1

        second = parser.parse([b"bad", good])
        assert len(second.events) == 1
        assert second.error_count == 2

    def test_batch_without_events_is_not_emitted(self):
        parser = BatchParser()
        assert parser.parse([b"bad", b"worse"]) is None
        assert parser.error_count == 2


@pytest.mark.asyncio
class TestReadChunks:
    """Test the byte reader."""

    async def test_stream_source(self):
        stream = io.BytesIO(b"x" * 10)
        chunks = [chunk async for chunk in read_chunks(stream, chunk_size=4)]
        assert chunks == [b"xxxx", b"xxxx", b"xx"]
        # Caller-owned streams stay open
        assert not stream.closed

    async def test_file_source(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"abcdef")
        chunks = [chunk async for chunk in read_chunks(path, chunk_size=5)]
        assert b"".join(chunks) == b"abcdef"

    async def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            async for _ in read_chunks(tmp_path / "missing.jsonl"):
                pass

    async def test_directory_is_unavailable(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            async for _ in read_chunks(tmp_path):
                pass
