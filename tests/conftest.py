"""Shared test fixtures for agentlog."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import pytest

from agentlog.types import Conversation, ExecutionLog, StoredResult

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------


def make_parser_config(**overrides):
    """Create a ParserConfig with test-friendly defaults.

    Backoff is shortened so retry tests stay fast; everything else is the
    production default unless overridden.

    Usage::

        cfg = make_parser_config(strict_validation=True)
        cfg = make_parser_config(retry_attempts=0, timeout_seconds=0.05)
    """
    from agentlog.config import ParserConfig

    defaults: dict[str, Any] = {"retry_backoff_ms": 1}
    defaults.update(overrides)
    return ParserConfig(**defaults)


def make_settings(**overrides):
    """Create a Settings object from pure defaults (no config.toml, no .env)."""
    from agentlog.config import LoggingConfig, ParserConfig, Settings, StreamingConfig

    defaults: dict[str, Any] = {
        "parser": ParserConfig(),
        "streaming": StreamingConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def result_line(**fields: Any) -> str:
    """A JSON result line as the agent CLI prints it."""
    record = {
        "type": "result",
        "subtype": "success",
        "is_error": False,
        "session_id": "test-123",
        "duration_ms": 1000,
        "num_turns": 3,
        "total_cost_usd": 0.05,
    }
    record.update(fields)
    return json.dumps(record)


def plan_mode_line(plan: str = "## Plan\n1. Do the thing", **fields: Any) -> str:
    """An assistant message calling ExitPlanMode."""
    message = {
        "type": "assistant",
        "message": {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Here is my plan."},
                {
                    "type": "tool_use",
                    "id": "toolu_01",
                    "name": "ExitPlanMode",
                    "input": {"plan": plan},
                },
            ],
        },
        "session_id": "plan-session-1",
    }
    message.update(fields)
    return json.dumps(message, separators=(",", ":"))


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeExecutionManager:
    def __init__(self) -> None:
        self.running: set[int] = set()
        self.handles: dict[int, str] = {}

    def is_running(self, conversation_id: int) -> bool:
        return conversation_id in self.running

    def get_container_handle(self, conversation_id: int) -> str | None:
        return self.handles.get(conversation_id)


class FakeConversationStore:
    def __init__(self) -> None:
        self.conversations: dict[int, Conversation] = {}

    def add(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        return self.conversations.get(conversation_id)


class FakeExecutionLogStore:
    def __init__(self) -> None:
        self.logs: dict[int, ExecutionLog] = {}

    def put(self, conversation_id: int, text: str) -> ExecutionLog:
        log = ExecutionLog(
            id=len(self.logs) + 1, conversation_id=conversation_id, execution_logs=text
        )
        self.logs[conversation_id] = log
        return log

    def append(self, conversation_id: int, text: str) -> None:
        self.logs[conversation_id].execution_logs += text

    async def get_by_conversation_id(self, conversation_id: int) -> ExecutionLog | None:
        return self.logs.get(conversation_id)


class FakeResultStore:
    """Plays both the result store and the result service."""

    def __init__(self) -> None:
        self.results: dict[int, StoredResult] = {}
        self.records: dict[int, dict[str, Any]] = {}

    async def exists_by_conversation_id(self, conversation_id: int) -> bool:
        return conversation_id in self.results

    async def create_result(self, conversation_id: int, record: Mapping[str, Any]) -> StoredResult:
        stored = StoredResult(
            id=len(self.results) + 1,
            conversation_id=conversation_id,
            session_id=str(record.get("session_id", "")),
        )
        self.results[conversation_id] = stored
        self.records[conversation_id] = dict(record)
        return stored


class FakeTaskStore:
    def __init__(self) -> None:
        self.session_ids: dict[int, str] = {}

    async def update_task_session_id(self, task_id: int, session_id: str) -> None:
        self.session_ids[task_id] = session_id


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Built from pure defaults so tests never read a developer's config.toml or
    .env, and the legacy parser env overrides are cleared.
    """
    monkeypatch.delenv("AGENTLOG_PARSER_TIMEOUT", raising=False)
    monkeypatch.delenv("AGENTLOG_PARSER_STRICT_VALIDATION", raising=False)
    monkeypatch.setattr("agentlog.config._settings", make_settings())


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def executions() -> FakeExecutionManager:
    return FakeExecutionManager()


@pytest.fixture
def conversations() -> FakeConversationStore:
    return FakeConversationStore()


@pytest.fixture
def execution_logs() -> FakeExecutionLogStore:
    return FakeExecutionLogStore()


@pytest.fixture
def result_store() -> FakeResultStore:
    return FakeResultStore()


@pytest.fixture
def task_store() -> FakeTaskStore:
    return FakeTaskStore()
