"""Error taxonomy for result extraction.

Every class carries a ``kind`` string that doubles as the metrics key for
``ParseMetrics.record_error``. Caller cancellation is not modelled here: it
surfaces as the plain ``asyncio.CancelledError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentlog.result_parser.validator.rules import ValidationError


class ResultParseError(Exception):
    """Base class for everything the result parser raises."""

    kind = "parse_error"


class EmptyInputError(ResultParseError):
    """The execution log blob is empty or whitespace only."""

    kind = "empty_logs"


class NoMatchFoundError(ResultParseError):
    """A strategy found no candidate result in the blob."""

    kind = "no_match"


class ValidationFailedError(ResultParseError):
    """Strict validation rejected an extracted record."""

    kind = "validation"

    def __init__(self, errors: list[ValidationError]) -> None:
        self.errors = errors
        first = errors[0].message if errors else "unknown validation failure"
        super().__init__(f"validation failed: {first}")


class ParseTimeoutError(ResultParseError, TimeoutError):
    """The configured parse timeout expired."""

    kind = "timeout"


class MaxRetriesExceededError(ResultParseError):
    """Every bounded attempt of the selected strategy failed."""

    kind = "max_retries_exceeded"

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed to parse after {attempts} attempts, last error: {last_error}")
