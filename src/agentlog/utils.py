"""Shared utility functions.

Small helpers used by both the result parser and the streaming service:
background task creation, log blob splitting and capture timestamps.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import Any

from agentlog.logger import logger


def create_background_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str | None = None,
) -> asyncio.Task[Any]:
    """Create an asyncio task that logs exceptions instead of swallowing them.

    A drop-in replacement for ``asyncio.create_task`` for fire-and-forget
    work (result persistence after a run) where we don't await the result
    but still want failures to appear in logs.
    """
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Done-callback for background tasks: logs unhandled exceptions."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        # logger.exception() won't work here because we're in a done-callback,
        # not an except handler.
        logger.error(
            "Background task failed",
            task_name=task.get_name(),
            exc_info=exc,
        )


def now_ms() -> int:
    """Wall-clock capture timestamp in epoch milliseconds."""
    return int(time.time() * 1000)


def non_empty_lines(text: str) -> list[str]:
    """Split a log blob into lines, dropping empty ones (whitespace is kept)."""
    return [line for line in text.split("\n") if line]

