"""Bounded line readers for subprocess pipes.

``docker logs -f`` can print arbitrarily long lines (a whole tool result on
one line is common). Lines are cut at ``max_line_bytes`` with a ``...``
marker instead of being buffered without limit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeAlias

from agentlog.logger import logger

TRUNCATION_MARKER = "..."
_CHUNK_SIZE = 8192

EmitLine: TypeAlias = Callable[[str], Awaitable[None]]


class _LineBuffer:
    def __init__(self, max_line_bytes: int) -> None:
        self.max_line_bytes = max_line_bytes
        self._buf = bytearray()
        self._dropped = 0

    def append(self, segment: bytes) -> None:
        room = self.max_line_bytes - len(self._buf)
        if len(segment) > room:
            self._buf.extend(segment[: max(0, room)])
            self._dropped += len(segment) - max(0, room)
        else:
            self._buf.extend(segment)

    def take(self) -> tuple[str, int]:
        """The buffered line (truncated if needed) and how many bytes were cut."""
        dropped = self._dropped
        if dropped:
            keep = max(0, self.max_line_bytes - len(TRUNCATION_MARKER))
            line = self._buf[:keep].decode("utf-8", errors="ignore") + TRUNCATION_MARKER
        else:
            line = self._buf.decode("utf-8", errors="replace")
        self._buf.clear()
        self._dropped = 0
        return line.rstrip("\r"), dropped

    def __bool__(self) -> bool:
        return bool(self._buf) or bool(self._dropped)


async def read_lines(
    stream: asyncio.StreamReader,
    emit: EmitLine,
    *,
    max_line_bytes: int,
    source: str,
) -> int:
    """Forward every non-empty line of *stream* to *emit* until EOF.

    Returns the number of lines emitted.
    """
    buffer = _LineBuffer(max_line_bytes)
    emitted = 0

    async def flush() -> None:
        nonlocal emitted
        line, dropped = buffer.take()
        if dropped:
            logger.warning(
                "Truncated oversized log line",
                source=source,
                original_bytes=max_line_bytes + dropped,
            )
        if line:
            await emit(line)
            emitted += 1

    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        start = 0
        while (newline := chunk.find(b"\n", start)) != -1:
            buffer.append(chunk[start:newline])
            await flush()
            start = newline + 1
        buffer.append(chunk[start:])

    if buffer:
        await flush()
    return emitted
