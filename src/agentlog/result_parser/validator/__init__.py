from agentlog.result_parser.validator.rules import (
    OPTIONAL_FIELDS,
    REQUIRED_FIELDS,
    VALID_SUBTYPES,
    BoolRule,
    CustomRule,
    EnumRule,
    FormatRule,
    LengthRule,
    NumberRule,
    RangeRule,
    RequiredRule,
    StringRule,
    TypeRule,
    ValidationError,
    ValidationRule,
    default_rules,
)
from agentlog.result_parser.validator.validator import (
    ChainValidator,
    ConditionalValidator,
    ResultValidator,
    Validator,
)

__all__ = [
    "OPTIONAL_FIELDS",
    "REQUIRED_FIELDS",
    "VALID_SUBTYPES",
    "BoolRule",
    "ChainValidator",
    "ConditionalValidator",
    "CustomRule",
    "EnumRule",
    "FormatRule",
    "LengthRule",
    "NumberRule",
    "RangeRule",
    "RequiredRule",
    "ResultValidator",
    "StringRule",
    "TypeRule",
    "ValidationError",
    "ValidationRule",
    "Validator",
    "default_rules",
]
