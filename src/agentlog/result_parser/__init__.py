"""Result parser: extracts a structured result record from an execution log.

This package is split into focused submodules:
  errors      — exception taxonomy (each class carries a metrics ``kind``)
  validator   — field rules and record validators
  strategies  — pluggable extraction strategies and format probes
  factory     — strategy ordering, selection and the adaptive cache
  parser      — ResultParser orchestration (retries, validation, persistence)
  batch       — batch, cached and streaming wrappers
  records     — typed result variants
  metrics     — parser health counters
"""

from agentlog.result_parser.batch import BatchParser, CachedParser, StreamingParser
from agentlog.result_parser.errors import (
    EmptyInputError,
    MaxRetriesExceededError,
    NoMatchFoundError,
    ParseTimeoutError,
    ResultParseError,
    ValidationFailedError,
)
from agentlog.result_parser.factory import (
    AdaptiveStrategyFactory,
    StrategyFactory,
    create_parser,
    default_parser_config,
)
from agentlog.result_parser.metrics import ParseMetrics, ParseStats
from agentlog.result_parser.parser import ResultParser
from agentlog.result_parser.records import (
    ErrorResult,
    FallbackResult,
    OptionalFields,
    PlanModeResult,
    RequiredFields,
    ResultRecord,
    SuccessResult,
    build_record,
)

__all__ = [
    "AdaptiveStrategyFactory",
    "BatchParser",
    "CachedParser",
    "EmptyInputError",
    "ErrorResult",
    "FallbackResult",
    "MaxRetriesExceededError",
    "NoMatchFoundError",
    "OptionalFields",
    "ParseMetrics",
    "ParseStats",
    "ParseTimeoutError",
    "PlanModeResult",
    "RequiredFields",
    "ResultParseError",
    "ResultParser",
    "ResultRecord",
    "StrategyFactory",
    "StreamingParser",
    "SuccessResult",
    "ValidationFailedError",
    "build_record",
    "create_parser",
    "default_parser_config",
]
