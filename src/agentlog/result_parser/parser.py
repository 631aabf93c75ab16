"""Result extraction orchestration.

``ResultParser`` turns a finished session's log blob into a result record:

  1. pick a strategy (a fixed one, or the factory's first ``can_parse`` match)
  2. run it up to ``retry_attempts + 1`` times with linear backoff, in a
     worker thread so a large blob does not stall the event loop
  3. validate; strict mode rejects, lenient mode logs and keeps the record

Selection happens once per call. A failing strategy is retried, never
swapped for another one mid-call.

``parse_and_create`` is the fire-and-forget path run after a container exits:
it persists the record and copies the session id onto the task, logging every
failure instead of raising.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from agentlog.config import ParserConfig
from agentlog.logger import logger
from agentlog.result_parser.errors import (
    EmptyInputError,
    MaxRetriesExceededError,
    ParseTimeoutError,
    ValidationFailedError,
)
from agentlog.result_parser.factory import StrategyFactory, default_parser_config
from agentlog.result_parser.metrics import ParseMetrics
from agentlog.result_parser.records import ResultRecord, build_record
from agentlog.result_parser.strategies import ParseStrategy, Record
from agentlog.result_parser.validator import ResultValidator, Validator
from agentlog.types import (
    Conversation,
    ExecutionLog,
    ResultService,
    ResultStore,
    StoredResult,
    TaskStore,
)
from agentlog.utils import create_background_task

_CANCELLED = "cancelled"


class ResultParser:
    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        strategy_factory: StrategyFactory | None = None,
        strategy: ParseStrategy | None = None,
        validator: Validator | None = None,
        metrics: ParseMetrics | None = None,
        result_store: ResultStore | None = None,
        result_service: ResultService | None = None,
        task_store: TaskStore | None = None,
    ) -> None:
        self.config = config or default_parser_config()
        self.strategy_factory = strategy_factory or StrategyFactory(self.config)
        self.strategy = strategy
        self.validator: Validator = validator or ResultValidator(
            self.config.strict_validation,
            required_fields=self.config.required_fields,
        )
        self._metrics = metrics or ParseMetrics()
        self.result_store = result_store
        self.result_service = result_service
        self.task_store = task_store

    @property
    def metrics(self) -> ParseMetrics:
        return self._metrics

    def get_metrics(self) -> ParseMetrics:
        return self._metrics

    def select_strategy(self, blob: str) -> ParseStrategy:
        if self.strategy is not None:
            return self.strategy
        return self.strategy_factory.get_best_strategy(blob)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def parse_from_logs(self, blob: str) -> Record:
        """``parse`` bounded by ``config.timeout_seconds``."""
        deadline = asyncio.timeout(self.config.timeout_seconds)
        try:
            async with deadline:
                return await self._parse(blob, record_cancel=False)
        except asyncio.CancelledError:
            self._metrics.record_error(_CANCELLED)
            raise
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            self._metrics.record_error(ParseTimeoutError.kind)
            raise ParseTimeoutError(
                f"parsing did not finish within {self.config.timeout_seconds}s"
            ) from exc

    async def parse(self, blob: str) -> Record:
        """Extract a result record within the caller's cancellation scope.

        Raises ``EmptyInputError``, ``MaxRetriesExceededError`` or (strict
        mode) ``ValidationFailedError``. Cancellation propagates unchanged.
        """
        return await self._parse(blob, record_cancel=True)

    async def parse_record(self, blob: str) -> ResultRecord:
        """Like ``parse_from_logs`` but returns the typed record variant.

        A record accepted in lenient mode despite rule violations cannot be
        typed; ``ValidationFailedError`` is raised for it.
        """
        return build_record(await self.parse_from_logs(blob))

    async def _parse(self, blob: str, *, record_cancel: bool) -> Record:
        started = time.monotonic()
        try:
            if not blob.strip():
                self._metrics.record_error(EmptyInputError.kind)
                raise EmptyInputError("execution logs are empty")

            strategy = self.select_strategy(blob)
            self._metrics.record_strategy_usage(strategy.name)
            record = await self._run_with_retries(strategy, blob)
            self._validate(record, strategy)
            self._metrics.record_success(strategy.name)
            return record
        except asyncio.CancelledError:
            if record_cancel:
                self._metrics.record_error(_CANCELLED)
            raise
        finally:
            self._metrics.record_attempt(time.monotonic() - started)

    async def _run_with_retries(self, strategy: ParseStrategy, blob: str) -> Record:
        retries = self.config.retry_attempts
        last_error: Exception | None = None
        for attempt in range(retries + 1):
            # Cancellation checkpoint before every attempt
            await asyncio.sleep(0)
            try:
                return await asyncio.to_thread(strategy.parse, blob)
            except Exception as exc:
                last_error = exc
                self._metrics.record_retry()
                logger.debug(
                    "Parse attempt failed",
                    strategy=strategy.name,
                    attempt=attempt + 1,
                    err=str(exc),
                )
                if attempt < retries:
                    await asyncio.sleep((attempt + 1) * self.config.retry_backoff_ms / 1000)

        self._metrics.record_error(MaxRetriesExceededError.kind)
        raise MaxRetriesExceededError(retries + 1, last_error) from last_error

    def _validate(self, record: Record, strategy: ParseStrategy) -> None:
        if self.config.allow_partial_data:
            error = self.validator.validate_partial(record)
        else:
            error = self.validator.validate(record)
        if error is None:
            return

        self._metrics.record_validation_error()
        if self.config.strict_validation:
            self._metrics.record_error(ValidationFailedError.kind)
            raise ValidationFailedError(
                self.validator.collect_errors(record, partial=self.config.allow_partial_data)
            )
        logger.warning(
            "Result validation failed, continuing in lenient mode",
            strategy=strategy.name,
            field=error.field,
            code=error.code,
            err=error.message,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def parse_and_create(
        self, conversation: Conversation, execution_log: ExecutionLog
    ) -> StoredResult | None:
        """Parse and store the result for *conversation*, at most once.

        Never raises (except on cancellation); every failure is logged and
        ``None`` is returned.
        """
        started = time.monotonic()
        try:
            record = await self.parse_from_logs(execution_log.execution_logs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Failed to parse execution result from logs",
                conversation_id=conversation.id,
                execution_log_id=execution_log.id,
                err=str(exc),
                duration=round(time.monotonic() - started, 3),
            )
            return None

        if self.result_store is not None:
            try:
                exists = await self.result_store.exists_by_conversation_id(conversation.id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "Failed to check for an existing result",
                    conversation_id=conversation.id,
                    err=str(exc),
                )
                return None
            if exists:
                logger.info(
                    "Result already exists, skipping creation", conversation_id=conversation.id
                )
                return None

        if self.result_service is None:
            return None

        try:
            stored = await self.result_service.create_result(conversation.id, record)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to create result", conversation_id=conversation.id, err=str(exc))
            return None

        logger.info(
            "Created result",
            conversation_id=conversation.id,
            result_id=stored.id,
            duration=round(time.monotonic() - started, 3),
        )
        await self._propagate_session_id(conversation, stored)
        return stored

    async def _propagate_session_id(self, conversation: Conversation, stored: StoredResult) -> None:
        if not stored.session_id or conversation.task_id is None or self.task_store is None:
            return
        try:
            await self.task_store.update_task_session_id(conversation.task_id, stored.session_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "Failed to update task session id",
                task_id=conversation.task_id,
                session_id=stored.session_id,
                err=str(exc),
            )
            return
        logger.info(
            "Updated task session id",
            task_id=conversation.task_id,
            session_id=stored.session_id,
        )

    def schedule_parse_and_create(
        self, conversation: Conversation, execution_log: ExecutionLog
    ) -> asyncio.Task[Any]:
        """Run ``parse_and_create`` in the background; the caller need not await it."""
        return create_background_task(
            self.parse_and_create(conversation, execution_log),
            name=f"parse-result-{conversation.id}",
        )
