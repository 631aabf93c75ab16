"""Conversation log streaming.

A stream request resolves the conversation, then one producer task fills a
bounded queue from one of three sources:

  live tail   — session running and a container handle is known: persisted
                lines first, then ``docker logs -f --timestamps <handle>``
                read from stdout and stderr concurrently
  poll        — session running without a handle: re-read the persisted
                blob every ``poll_interval_seconds`` and emit the new suffix
  replay      — session already finished: emit the persisted blob once

Finished sessions end with a synthetic completion line. The producer is
owned by its ``LogStream``: closing the stream cancels and joins it, which
also kills the ``docker logs`` process.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, Self

from agentlog.config import StreamingConfig, get_settings
from agentlog.logger import logger
from agentlog.streaming._readers import read_lines
from agentlog.types import (
    CONVERSATION_STATUS_RUNNING,
    Conversation,
    ConversationStore,
    ExecutionLogStore,
    ExecutionManager,
)
from agentlog.utils import create_background_task, non_empty_lines, now_ms

COMPLETION_LINE = "=== Conversation completed with status: {status} ==="


class LogStreamError(Exception):
    """Base class for streaming failures."""

    kind = "stream_error"


class ConversationNotFoundError(LogStreamError):
    kind = "not_found"

    def __init__(self, conversation_id: int) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"conversation not found: {conversation_id}")


class StreamSourceUnavailableError(LogStreamError):
    """Neither the live container output nor the persisted log could be read."""

    kind = "source_unavailable"


@dataclass(frozen=True)
class LogLine:
    line: str
    timestamp: int  # capture time, epoch ms

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "timestamp": self.timestamp}


def completion_line(status: str) -> str:
    return COMPLETION_LINE.format(status=status)


_END = object()


class LogStream:
    """Async iterator over the lines of one stream request.

    Iteration ends when the producer finishes. If the producer failed, the
    typed error is raised after the last delivered line rather than being
    turned into a log line.
    """

    def __init__(self, conversation_id: int, capacity: int) -> None:
        self.conversation_id = conversation_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._task: asyncio.Task[None] | None = None
        self._error: LogStreamError | None = None
        self._done = False

    @property
    def error(self) -> LogStreamError | None:
        return self._error

    async def send(self, line: str) -> None:
        await self._queue.put(LogLine(line=line, timestamp=now_ms()))

    def _start(self, producer: Coroutine[Any, Any, None]) -> None:
        self._task = create_background_task(
            self._run(producer), name=f"log-stream-{self.conversation_id}"
        )

    async def _run(self, producer: Coroutine[Any, Any, None]) -> None:
        try:
            await producer
        except asyncio.CancelledError:
            with contextlib.suppress(asyncio.QueueFull):
                self._queue.put_nowait(_END)
            raise
        except LogStreamError as exc:
            self._error = exc
        except Exception as exc:
            logger.exception("Log stream producer failed", conversation_id=self.conversation_id)
            self._error = StreamSourceUnavailableError(str(exc))
        await self._queue.put(_END)

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> LogLine:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._done = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop the producer (killing any tail process) and wait for it."""
        self._done = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


class LogStreamingService:
    def __init__(
        self,
        conversations: ConversationStore,
        execution_logs: ExecutionLogStore,
        executions: ExecutionManager,
        config: StreamingConfig | None = None,
    ) -> None:
        self.conversations = conversations
        self.execution_logs = execution_logs
        self.executions = executions
        self.config = config or get_settings().streaming

    async def stream_conversation_logs(self, conversation_id: int) -> LogStream:
        """Start streaming; raises ``ConversationNotFoundError`` before any line."""
        conversation = await self._get_conversation(conversation_id)
        stream = LogStream(conversation_id, self.config.channel_capacity)
        stream._start(self._produce(conversation, stream))
        return stream

    async def get_historical_logs(self, conversation_id: int) -> str:
        try:
            execution_log = await self.execution_logs.get_by_conversation_id(conversation_id)
        except Exception as exc:
            raise StreamSourceUnavailableError(f"failed to get execution log: {exc}") from exc
        if execution_log is None:
            raise StreamSourceUnavailableError(
                f"no execution log for conversation {conversation_id}"
            )
        return execution_log.execution_logs

    async def is_conversation_running(self, conversation_id: int) -> bool:
        conversation = await self._get_conversation(conversation_id)
        return conversation.status == CONVERSATION_STATUS_RUNNING or self.executions.is_running(
            conversation_id
        )

    async def _get_conversation(self, conversation_id: int) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    async def _produce(self, conversation: Conversation, stream: LogStream) -> None:
        if not self.executions.is_running(conversation.id):
            await self._replay(conversation, stream)
            return

        handle = self.executions.get_container_handle(conversation.id)
        if handle:
            await self._live_tail(conversation, handle, stream)
        else:
            logger.warning(
                "No container handle for running conversation, polling persisted logs",
                conversation_id=conversation.id,
            )
            await self._poll(conversation, stream)

    async def _replay(self, conversation: Conversation, stream: LogStream) -> None:
        blob = await self.get_historical_logs(conversation.id)
        for line in non_empty_lines(blob):
            await stream.send(line)
        await stream.send(completion_line(conversation.status))

    async def _poll(self, conversation: Conversation, stream: LogStream) -> None:
        offset = 0
        while True:
            await asyncio.sleep(self.config.poll_interval_seconds)

            if not self.executions.is_running(conversation.id):
                with contextlib.suppress(StreamSourceUnavailableError):
                    final = await self.get_historical_logs(conversation.id)
                    for line in non_empty_lines(final[offset:]):
                        await stream.send(line)
                await stream.send(completion_line(await self._current_status(conversation)))
                return

            current = await self.get_historical_logs(conversation.id)
            if len(current) > offset:
                delta, offset = current[offset:], len(current)
                for line in non_empty_lines(delta):
                    await stream.send(line)

    async def _live_tail(self, conversation: Conversation, handle: str, stream: LogStream) -> None:
        # Persisted output first; a missing blob only means nothing was written yet
        with contextlib.suppress(StreamSourceUnavailableError):
            for line in non_empty_lines(await self.get_historical_logs(conversation.id)):
                await stream.send(line)

        try:
            proc = await asyncio.create_subprocess_exec(
                self.config.docker_cli,
                "logs",
                "-f",
                "--timestamps",
                handle,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise StreamSourceUnavailableError(f"failed to start docker logs: {exc}") from exc

        assert proc.stdout is not None
        assert proc.stderr is not None
        emitted = 0
        try:
            try:
                async with asyncio.TaskGroup() as tg:
                    out = tg.create_task(
                        read_lines(
                            proc.stdout,
                            stream.send,
                            max_line_bytes=self.config.max_line_bytes,
                            source="stdout",
                        )
                    )
                    err = tg.create_task(
                        read_lines(
                            proc.stderr,
                            stream.send,
                            max_line_bytes=self.config.max_line_bytes,
                            source="stderr",
                        )
                    )
            except ExceptionGroup as group:
                first = group.exceptions[0]
                raise StreamSourceUnavailableError(f"log reader failed: {first}") from first
            emitted = out.result() + err.result()
            returncode = await proc.wait()
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(Exception):
                    await proc.wait()

        if returncode != 0 and emitted == 0:
            raise StreamSourceUnavailableError(
                f"docker logs exited with code {returncode} for container {handle}"
            )
        logger.info(
            "Container log tail ended",
            conversation_id=conversation.id,
            container=handle,
            returncode=returncode,
        )
        await stream.send(completion_line(await self._current_status(conversation)))

    async def _current_status(self, conversation: Conversation) -> str:
        refreshed = await self.conversations.get_by_id(conversation.id)
        return (refreshed or conversation).status
