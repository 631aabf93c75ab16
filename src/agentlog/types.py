"""Data models and collaborator contracts for agentlog.

The persistence layer, the container lifecycle manager and the task service
live outside this package. They are described here as Protocols so the parser
and the streaming service can be wired against any implementation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

CONVERSATION_STATUS_RUNNING = "running"


@dataclass
class Conversation:
    id: int
    status: str
    task_id: int | None = None


@dataclass
class ExecutionLog:
    id: int
    conversation_id: int
    execution_logs: str = ""


@dataclass
class StoredResult:
    id: int
    conversation_id: int
    session_id: str = ""


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@runtime_checkable
class ExecutionManager(Protocol):
    """Container lifecycle view used by the streaming service."""

    def is_running(self, conversation_id: int) -> bool: ...
    def get_container_handle(self, conversation_id: int) -> str | None: ...


class ConversationStore(Protocol):
    async def get_by_id(self, conversation_id: int) -> Conversation | None: ...


class ExecutionLogStore(Protocol):
    async def get_by_conversation_id(self, conversation_id: int) -> ExecutionLog | None: ...


class ResultStore(Protocol):
    async def exists_by_conversation_id(self, conversation_id: int) -> bool: ...


class ResultService(Protocol):
    async def create_result(
        self, conversation_id: int, record: Mapping[str, Any]
    ) -> StoredResult: ...


class TaskStore(Protocol):
    async def update_task_session_id(self, task_id: int, session_id: str) -> None: ...
