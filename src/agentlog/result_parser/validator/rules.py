"""Field validation rules for parsed result records.

Each rule is a pure ``(field, value) -> ValidationError | None`` check tagged
with the field names it applies to. Rules are independent of one another and
of evaluation order; a rule that only checks ranges ignores values of the
wrong type and leaves them to the type rules.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

REQUIRED_FIELDS = ("type", "subtype", "is_error", "session_id")
OPTIONAL_FIELDS = (
    "duration_ms",
    "duration_api_ms",
    "num_turns",
    "result",
    "total_cost_usd",
    "usage",
)
VALID_SUBTYPES = ("success", "error", "timeout", "cancelled", "fallback", "plan_mode")

MAX_DURATION_MS = 24 * 60 * 60 * 1000
MAX_TURNS = 1000
MAX_COST_USD = 10000
MAX_SESSION_ID_LENGTH = 100
MAX_RESULT_LENGTH = 1_000_000
MAX_USAGE_LENGTH = 10_000

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class ValidationError:
    """A single rule violation. Informational: collected, never raised."""

    field: str
    value: Any
    expected: str
    message: str
    code: str

    def __str__(self) -> str:
        return f"validation error for field '{self.field}': {self.message}"


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


class ValidationRule(ABC):
    name: str = ""
    fields: frozenset[str] = frozenset()

    def is_applicable(self, field: str) -> bool:
        return field in self.fields

    @abstractmethod
    def validate(self, field: str, value: Any) -> ValidationError | None: ...


class RequiredRule(ValidationRule):
    name = "required"
    fields = frozenset(REQUIRED_FIELDS)

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if value is None:
            return ValidationError(
                field, value, "non-null value",
                f"required field '{field}' cannot be null", "FIELD_REQUIRED",
            )
        if value == "":
            return ValidationError(
                field, value, "non-empty string",
                f"required field '{field}' cannot be empty", "FIELD_EMPTY",
            )
        return None


class TypeRule(ValidationRule):
    name = "type"
    fields = frozenset({"type"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if not isinstance(value, str):
            return ValidationError(
                field, value, "string", "type field must be a string", "INVALID_TYPE"
            )
        if value != "result":
            return ValidationError(
                field, value, "result", "type field must be 'result'", "INVALID_VALUE"
            )
        return None


class StringRule(ValidationRule):
    name = "string"
    fields = frozenset({"type", "subtype", "session_id", "result", "usage"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if isinstance(value, str):
            return None
        return ValidationError(
            field, value, "string", f"field '{field}' must be a string", "INVALID_TYPE"
        )


class BoolRule(ValidationRule):
    name = "bool"
    fields = frozenset({"is_error"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if isinstance(value, bool):
            return None
        return ValidationError(
            field, value, "boolean", f"field '{field}' must be a boolean", "INVALID_TYPE"
        )


class NumberRule(ValidationRule):
    name = "number"
    fields = frozenset({"duration_ms", "duration_api_ms", "num_turns", "total_cost_usd"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if field == "total_cost_usd":
            if _is_number(value):
                return None
            return ValidationError(
                field, value, "number", f"field '{field}' must be a number", "INVALID_TYPE"
            )
        if _is_integer(value):
            return None
        return ValidationError(
            field, value, "integer", f"field '{field}' must be an integer", "INVALID_TYPE"
        )


class RangeRule(ValidationRule):
    name = "range"
    fields = frozenset({"duration_ms", "duration_api_ms", "num_turns", "total_cost_usd"})

    _bounds: dict[str, tuple[int, int, str]] = {
        "duration_ms": (0, MAX_DURATION_MS, "maximum duration (24 hours)"),
        "duration_api_ms": (0, MAX_DURATION_MS, "maximum duration (24 hours)"),
        "num_turns": (1, MAX_TURNS, "maximum turns (1000)"),
        "total_cost_usd": (0, MAX_COST_USD, "maximum cost ($10,000)"),
    }

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if not _is_number(value):
            return None
        low, high, ceiling = self._bounds[field]
        if value < low:
            qualifier = "non-negative" if low == 0 else f"at least {low}"
            return ValidationError(
                field, value, f">= {low}", f"field '{field}' must be {qualifier}", "INVALID_RANGE"
            )
        if value > high:
            return ValidationError(
                field, value, f"<= {high}", f"field '{field}' exceeds {ceiling}", "INVALID_RANGE"
            )
        return None


class EnumRule(ValidationRule):
    name = "enum"
    fields = frozenset({"subtype"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if not isinstance(value, str) or value in VALID_SUBTYPES:
            return None
        allowed = ", ".join(VALID_SUBTYPES)
        return ValidationError(
            field, value, allowed, f"field '{field}' must be one of: {allowed}", "INVALID_ENUM"
        )


class LengthRule(ValidationRule):
    name = "length"
    fields = frozenset({"session_id", "result", "usage"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        if not isinstance(value, str):
            return None
        if field == "session_id":
            if not value:
                return ValidationError(
                    field, value, "length >= 1", "session_id cannot be empty", "INVALID_LENGTH"
                )
            if len(value) > MAX_SESSION_ID_LENGTH:
                return ValidationError(
                    field, value, f"length <= {MAX_SESSION_ID_LENGTH}",
                    "session_id is too long (max 100 characters)", "INVALID_LENGTH",
                )
        elif field == "result" and len(value) > MAX_RESULT_LENGTH:
            return ValidationError(
                field, value, f"length <= {MAX_RESULT_LENGTH}",
                "result content is too long (max 1MB)", "INVALID_LENGTH",
            )
        elif field == "usage" and len(value) > MAX_USAGE_LENGTH:
            return ValidationError(
                field, value, f"length <= {MAX_USAGE_LENGTH}",
                "usage data is too long (max 10,000 characters)", "INVALID_LENGTH",
            )
        return None


class FormatRule(ValidationRule):
    name = "format"
    fields = frozenset({"session_id"})

    def validate(self, field: str, value: Any) -> ValidationError | None:
        # Empty strings are reported by RequiredRule/LengthRule
        if not isinstance(value, str) or not value or _SESSION_ID_RE.match(value):
            return None
        return ValidationError(
            field, value, "alphanumeric characters, hyphens, or underscores",
            "session_id contains invalid characters", "INVALID_FORMAT",
        )


class CustomRule(ValidationRule):
    """Rule built at runtime from a plain function."""

    def __init__(
        self,
        name: str,
        fields: Iterable[str],
        check: Callable[[str, Any], ValidationError | None],
    ) -> None:
        self.name = name
        self.fields = frozenset(fields)
        self._check = check

    def validate(self, field: str, value: Any) -> ValidationError | None:
        return self._check(field, value)


def default_rules() -> list[ValidationRule]:
    return [
        RequiredRule(),
        TypeRule(),
        StringRule(),
        BoolRule(),
        NumberRule(),
        RangeRule(),
        EnumRule(),
        LengthRule(),
        FormatRule(),
    ]
