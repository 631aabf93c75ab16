"""Tests for the batch, cached and streaming parser wrappers."""

from __future__ import annotations

import pytest
from conftest import make_parser_config, result_line

from agentlog.result_parser import (
    BatchParser,
    CachedParser,
    EmptyInputError,
    ResultParser,
    StreamingParser,
)


@pytest.fixture
def parser() -> ResultParser:
    return ResultParser(make_parser_config(retry_attempts=0))


async def _aiter(lines):
    for line in lines:
        yield line


class TestBatchParser:
    async def test_sequential_skips_failures(self, parser):
        blobs = [result_line(session_id="a"), "", result_line(session_id="b")]
        records = await BatchParser(parser).parse_batch(blobs)
        assert [r["session_id"] for r in records] == ["a", "b"]
        assert parser.metrics.get_stats().error_types == {"empty_logs": 1}

    async def test_concurrent_keeps_input_order(self, parser):
        blobs = [result_line(session_id=f"s{i}") for i in range(10)]
        blobs.insert(4, "   ")
        records = await BatchParser(parser).parse_batch_concurrent(blobs, concurrency=3)
        assert [r["session_id"] for r in records] == [f"s{i}" for i in range(10)]

    async def test_concurrent_empty_input(self, parser):
        assert await BatchParser(parser).parse_batch_concurrent([]) == []

    async def test_concurrency_is_clamped(self, parser):
        records = await BatchParser(parser).parse_batch_concurrent([result_line()], concurrency=0)
        assert len(records) == 1


class TestCachedParser:
    async def test_repeat_blob_is_served_from_cache(self, parser):
        cached = CachedParser(parser)
        first = await cached.parse_from_logs(result_line())
        second = await cached.parse_from_logs(result_line())

        assert first == second
        assert parser.metrics.get_stats().attempts == 1
        stats = cached.cache_stats()
        assert stats["hit_count"] == 1
        assert stats["miss_count"] == 1
        assert stats["hit_rate"] == 0.5

    async def test_cached_records_are_copies(self, parser):
        cached = CachedParser(parser)
        first = await cached.parse_from_logs(result_line())
        first["session_id"] = "mutated"
        again = await cached.parse_from_logs(result_line())
        assert again["session_id"] == "test-123"

    async def test_lru_eviction(self, parser):
        cached = CachedParser(parser, max_cache=2)
        a, b, c = (result_line(session_id=s) for s in "abc")
        await cached.parse_from_logs(a)
        await cached.parse_from_logs(b)
        await cached.parse_from_logs(a)  # a is now most recent
        await cached.parse_from_logs(c)  # evicts b

        assert cached.cache_stats()["cache_size"] == 2
        await cached.parse_from_logs(a)
        assert cached.cache_stats()["hit_count"] == 2
        await cached.parse_from_logs(b)
        assert cached.cache_stats()["miss_count"] == 4

    async def test_failures_are_not_cached(self, parser):
        cached = CachedParser(parser)
        for _ in range(2):
            with pytest.raises(EmptyInputError):
                await cached.parse_from_logs(" ")
        assert cached.cache_stats()["cache_size"] == 0

    async def test_clear(self, parser):
        cached = CachedParser(parser)
        await cached.parse_from_logs(result_line())
        cached.clear()
        assert cached.cache_stats()["cache_size"] == 0

    def test_default_size_from_config(self):
        parser = ResultParser(make_parser_config(result_cache_size=8))
        assert CachedParser(parser).max_cache == 8


class TestStreamingParser:
    async def test_finds_result_at_end_of_stream(self, parser):
        lines = ["starting", "working", result_line(session_id="streamed")]
        record = await StreamingParser(parser).parse_from_stream(_aiter(lines))
        assert record["session_id"] == "streamed"

    async def test_returns_early_once_a_result_is_buffered(self, parser):
        consumed: list[str] = []

        async def source():
            for line in ["a", result_line(session_id="early"), "b", "c", "d"]:
                consumed.append(line)
                yield line

        record = await StreamingParser(parser, buffer_size=2).parse_from_stream(source())
        assert record["session_id"] == "early"
        assert len(consumed) == 2

    async def test_heuristics_are_not_tried_mid_stream(self, parser):
        lines = [*(f"noise {i}" for i in range(6)), result_line(session_id="late")]
        record = await StreamingParser(parser, buffer_size=2).parse_from_stream(_aiter(lines))
        assert record["session_id"] == "late"

    async def test_empty_stream(self, parser):
        with pytest.raises(EmptyInputError, match="no log data received"):
            await StreamingParser(parser).parse_from_stream(_aiter([]))
