"""Typed result records.

Strategies and the persistence layer exchange plain field maps. Callers that
want a closed set of shapes use ``build_record`` (or
``ResultParser.parse_record``), which picks the variant from ``subtype`` and
validates the fields when the object is constructed:

  SuccessResult   — subtype "success"
  ErrorResult     — subtype "error", "timeout" or "cancelled"
  FallbackResult  — subtype "fallback" (degraded heuristic record)
  PlanModeResult  — subtype "plan_mode" (``result`` holds the plan text)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, TypeAlias

from agentlog.result_parser.errors import ValidationFailedError
from agentlog.result_parser.validator import OPTIONAL_FIELDS, ResultValidator, ValidationError

_validator = ResultValidator(strict=False)


@dataclass(frozen=True)
class RequiredFields:
    session_id: str
    is_error: bool
    subtype: str


@dataclass(frozen=True)
class OptionalFields:
    duration_ms: int | None = None
    duration_api_ms: int | None = None
    num_turns: int | None = None
    total_cost_usd: float | None = None
    result: str | None = None
    usage: str | None = None

    def to_mapping(self) -> dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return {name: value for name, value in values.items() if value is not None}


@dataclass(frozen=True)
class _ResultBase:
    subtypes: ClassVar[frozenset[str]] = frozenset()

    required: RequiredFields
    optional: OptionalFields = field(default_factory=OptionalFields)

    def __post_init__(self) -> None:
        if self.required.subtype not in self.subtypes:
            expected = ", ".join(sorted(self.subtypes))
            raise ValidationFailedError(
                [
                    ValidationError(
                        field="subtype",
                        value=self.required.subtype,
                        expected=expected,
                        message=f"{type(self).__name__} requires subtype in: {expected}",
                        code="INVALID_VARIANT",
                    )
                ]
            )
        errors = _validator.collect_errors(self.to_mapping())
        if errors:
            raise ValidationFailedError(errors)

    @property
    def session_id(self) -> str:
        return self.required.session_id

    @property
    def is_error(self) -> bool:
        return self.required.is_error

    @property
    def subtype(self) -> str:
        return self.required.subtype

    def to_mapping(self) -> dict[str, Any]:
        """The plain field map stored by the persistence layer."""
        return {
            "type": "result",
            "subtype": self.required.subtype,
            "is_error": self.required.is_error,
            "session_id": self.required.session_id,
            **self.optional.to_mapping(),
        }


@dataclass(frozen=True)
class SuccessResult(_ResultBase):
    subtypes: ClassVar[frozenset[str]] = frozenset({"success"})


@dataclass(frozen=True)
class ErrorResult(_ResultBase):
    subtypes: ClassVar[frozenset[str]] = frozenset({"error", "timeout", "cancelled"})


@dataclass(frozen=True)
class FallbackResult(_ResultBase):
    subtypes: ClassVar[frozenset[str]] = frozenset({"fallback"})


@dataclass(frozen=True)
class PlanModeResult(_ResultBase):
    subtypes: ClassVar[frozenset[str]] = frozenset({"plan_mode"})

    @property
    def plan(self) -> str:
        return self.optional.result or ""


ResultRecord: TypeAlias = SuccessResult | ErrorResult | FallbackResult | PlanModeResult

_VARIANTS: dict[str, type[_ResultBase]] = {
    subtype: cls
    for cls in (SuccessResult, ErrorResult, FallbackResult, PlanModeResult)
    for subtype in cls.subtypes
}


def build_record(data: Mapping[str, Any]) -> ResultRecord:
    """Build the typed variant for a parsed field map.

    Raises ``ValidationFailedError`` when a required field is missing, a field
    breaks a rule, or the subtype has no variant. Unknown keys are dropped.
    """
    errors = _validator.collect_errors(data)
    if errors:
        raise ValidationFailedError(errors)

    cls = _VARIANTS[data["subtype"]]
    optional = OptionalFields(**{name: data[name] for name in OPTIONAL_FIELDS if name in data})
    required = RequiredFields(
        session_id=data["session_id"],
        is_error=data["is_error"],
        subtype=data["subtype"],
    )
    return cls(required=required, optional=optional)  # type: ignore[return-value]
