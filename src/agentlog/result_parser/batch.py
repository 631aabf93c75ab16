"""Parser wrappers for bulk, cached and incremental extraction."""

from __future__ import annotations

import asyncio
import hashlib
from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable
from typing import Any

from agentlog.logger import logger
from agentlog.result_parser.errors import EmptyInputError
from agentlog.result_parser.parser import ResultParser
from agentlog.result_parser.strategies import FallbackStrategy, Record


class BatchParser:
    def __init__(self, parser: ResultParser) -> None:
        self.parser = parser

    async def parse_batch(self, blobs: Iterable[str]) -> list[Record]:
        """Parse blobs one after another, skipping (and logging) failures."""
        results: list[Record] = []
        for index, blob in enumerate(blobs):
            try:
                results.append(await self.parser.parse_from_logs(blob))
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Failed to parse log entry", index=index, err=str(exc))
        return results

    async def parse_batch_concurrent(
        self, blobs: Iterable[str], concurrency: int = 4
    ) -> list[Record]:
        """Parse blobs with a bounded worker pool.

        Workers pull ``(index, blob)`` jobs from one queue and push
        ``(index, record | None)`` onto another. Results come back in input
        order with failures dropped. Cancelling the caller cancels every
        worker.
        """
        entries = list(blobs)
        if not entries:
            return []
        concurrency = max(1, min(concurrency, len(entries)))

        jobs: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        results: asyncio.Queue[tuple[int, Record | None]] = asyncio.Queue()
        for job in enumerate(entries):
            jobs.put_nowait(job)

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    index, blob = jobs.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    record: Record | None = await self.parser.parse_from_logs(blob)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning(
                        "Failed to parse log entry", index=index, worker=worker_id, err=str(exc)
                    )
                    record = None
                await results.put((index, record))

        async with asyncio.TaskGroup() as tg:
            for worker_id in range(concurrency):
                tg.create_task(worker(worker_id), name=f"batch-parse-worker-{worker_id}")

        collected: dict[int, Record] = {}
        while not results.empty():
            index, record = results.get_nowait()
            if record is not None:
                collected[index] = record
        return [collected[i] for i in sorted(collected)]


class CachedParser:
    """Memoizes records by the sha256 of the blob (LRU, at most *max_cache* entries)."""

    def __init__(self, parser: ResultParser, max_cache: int | None = None) -> None:
        self.parser = parser
        self.max_cache = parser.config.result_cache_size if max_cache is None else max_cache
        self._cache: OrderedDict[str, Record] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _key(blob: str) -> str:
        return hashlib.sha256(blob.encode("utf-8", errors="replace")).hexdigest()

    async def parse_from_logs(self, blob: str) -> Record:
        key = self._key(blob)
        if (cached := self._cache.get(key)) is not None:
            self._cache.move_to_end(key)
            self._hits += 1
            return dict(cached)

        self._misses += 1
        record = await self.parser.parse_from_logs(blob)
        if self.max_cache > 0:
            self._cache[key] = dict(record)
            if len(self._cache) > self.max_cache:
                self._cache.popitem(last=False)
        return record

    def cache_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hit_count": self._hits,
            "miss_count": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
            "cache_size": len(self._cache),
            "max_cache": self.max_cache,
        }

    def clear(self) -> None:
        self._cache.clear()


class StreamingParser:
    """Finds a result in a line stream without holding the whole transcript.

    Every time *buffer_size* lines accumulate, the buffer is parsed; if no
    real strategy (anything but the fallback heuristics) claims it, the older
    half is dropped. At end of stream whatever remains is parsed normally.
    """

    def __init__(self, parser: ResultParser, buffer_size: int = 1000) -> None:
        self.parser = parser
        self.buffer_size = max(2, buffer_size)

    async def parse_from_stream(self, lines: AsyncIterable[str]) -> Record:
        buffer: list[str] = []
        async for line in lines:
            buffer.append(line)
            if len(buffer) < self.buffer_size:
                continue
            blob = "\n".join(buffer) + "\n"
            if not isinstance(self.parser.select_strategy(blob), FallbackStrategy):
                try:
                    return await self.parser.parse(blob)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.debug("Partial stream did not parse", err=str(exc))
            buffer = buffer[self.buffer_size // 2 :]

        if not buffer:
            raise EmptyInputError("no log data received")
        return await self.parser.parse("\n".join(buffer) + "\n")
