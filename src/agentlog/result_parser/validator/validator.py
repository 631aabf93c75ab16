"""Record-level validation built from the rule set.

``ResultValidator`` runs every applicable rule against every present field
and aggregates the violations. Strict mode additionally rejects fields
outside the known schema. Whether a failing record is still *accepted* is the
parser's decision (strict vs lenient); the validator only reports.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Protocol, TypeAlias

from agentlog.result_parser.validator.rules import (
    OPTIONAL_FIELDS,
    REQUIRED_FIELDS,
    ValidationError,
    ValidationRule,
    default_rules,
)

Record: TypeAlias = Mapping[str, Any]


class Validator(Protocol):
    def validate(self, record: Record) -> ValidationError | None: ...
    def validate_partial(self, record: Record) -> ValidationError | None: ...
    def collect_errors(self, record: Record, *, partial: bool = False) -> list[ValidationError]: ...
    def is_valid(self, record: Record) -> bool: ...


class ResultValidator:
    def __init__(
        self,
        strict: bool = False,
        *,
        required_fields: Iterable[str] = REQUIRED_FIELDS,
        optional_fields: Iterable[str] = OPTIONAL_FIELDS,
        rules: Sequence[ValidationRule] | None = None,
    ) -> None:
        self.strict = strict
        self.required_fields = list(required_fields)
        self.optional_fields = list(optional_fields)
        self._rules: list[ValidationRule] = list(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> list[ValidationRule]:
        return list(self._rules)

    def add_rule(self, rule: ValidationRule) -> None:
        self._rules.append(rule)

    def validate(self, record: Record) -> ValidationError | None:
        """Return the first blocking error, or None when the record is valid."""
        errors = self.collect_errors(record)
        return errors[0] if errors else None

    def validate_partial(self, record: Record) -> ValidationError | None:
        """Like ``validate`` but tolerates missing required fields."""
        errors = self.collect_errors(record, partial=True)
        return errors[0] if errors else None

    def is_valid(self, record: Record) -> bool:
        return not self.collect_errors(record)

    def collect_errors(self, record: Record, *, partial: bool = False) -> list[ValidationError]:
        """Full diagnostic list of every violation in *record*."""
        errors: list[ValidationError] = []

        if not partial:
            for field in self.required_fields:
                if field not in record:
                    errors.append(
                        ValidationError(
                            field=field,
                            value=None,
                            expected="required field",
                            message=f"required field '{field}' is missing",
                            code="FIELD_REQUIRED",
                        )
                    )

        for field, value in record.items():
            if self.strict and not self._is_allowed(field):
                errors.append(
                    ValidationError(
                        field=field,
                        value=value,
                        expected="allowed field",
                        message=f"field '{field}' is not allowed",
                        code="FIELD_NOT_ALLOWED",
                    )
                )
                continue
            for rule in self._rules:
                if rule.is_applicable(field) and (err := rule.validate(field, value)):
                    errors.append(err)

        if record.get("subtype") == "plan_mode":
            plan = record.get("result")
            if not isinstance(plan, str) or not plan.strip():
                errors.append(
                    ValidationError(
                        field="result",
                        value=plan,
                        expected="non-empty plan text",
                        message="plan_mode results must carry the plan text in 'result'",
                        code="PLAN_REQUIRED",
                    )
                )

        return errors

    def _is_allowed(self, field: str) -> bool:
        return field in self.required_fields or field in self.optional_fields


class ChainValidator:
    """Runs several validators in order; optionally stops at the first failure."""

    def __init__(self, *validators: Validator, stop_on_first: bool = True) -> None:
        self._validators = list(validators)
        self.stop_on_first = stop_on_first

    def add_validator(self, validator: Validator) -> None:
        self._validators.append(validator)

    def validate(self, record: Record) -> ValidationError | None:
        errors = self.collect_errors(record)
        return errors[0] if errors else None

    def validate_partial(self, record: Record) -> ValidationError | None:
        errors = self.collect_errors(record, partial=True)
        return errors[0] if errors else None

    def collect_errors(self, record: Record, *, partial: bool = False) -> list[ValidationError]:
        collected: list[ValidationError] = []
        for validator in self._validators:
            errors = validator.collect_errors(record, partial=partial)
            collected.extend(errors)
            if errors and self.stop_on_first:
                break
        return collected

    def is_valid(self, record: Record) -> bool:
        return all(v.is_valid(record) for v in self._validators)


class ConditionalValidator:
    """Applies *validator* only to records for which *condition* holds."""

    def __init__(self, condition: Callable[[Record], bool], validator: Validator) -> None:
        self._condition = condition
        self._validator = validator

    def validate(self, record: Record) -> ValidationError | None:
        return self._validator.validate(record) if self._condition(record) else None

    def validate_partial(self, record: Record) -> ValidationError | None:
        return self._validator.validate_partial(record) if self._condition(record) else None

    def collect_errors(self, record: Record, *, partial: bool = False) -> list[ValidationError]:
        if not self._condition(record):
            return []
        return self._validator.collect_errors(record, partial=partial)

    def is_valid(self, record: Record) -> bool:
        return not self._condition(record) or self._validator.is_valid(record)
