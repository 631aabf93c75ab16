"""Parse strategies: pluggable ways of turning a log blob into a result record.

Submodules:
  base           — ParseStrategy contract, format probes, JSON line helpers
  json_strategy  — JSON result line (general and size-capped variants)
  plan_mode      — ExitPlanMode tool call normalized to a plan_mode result
  text           — key=value / key: value result lines
  fallback       — keyword heuristics that never fail on non-empty input
"""

from agentlog.result_parser.strategies.base import (
    LogFormat,
    ParseStrategy,
    Record,
    contains_json,
    contains_plan_mode,
    contains_structured_text,
    detect_log_format,
    extract_json_from_line,
    is_plan_mode_payload,
)
from agentlog.result_parser.strategies.fallback import FallbackStrategy
from agentlog.result_parser.strategies.json_strategy import JSONStrategy, OptimizedJSONStrategy
from agentlog.result_parser.strategies.plan_mode import PlanModeStrategy
from agentlog.result_parser.strategies.text import StructuredTextStrategy

__all__ = [
    "FallbackStrategy",
    "JSONStrategy",
    "LogFormat",
    "OptimizedJSONStrategy",
    "ParseStrategy",
    "PlanModeStrategy",
    "Record",
    "StructuredTextStrategy",
    "contains_json",
    "contains_plan_mode",
    "contains_structured_text",
    "detect_log_format",
    "extract_json_from_line",
    "is_plan_mode_payload",
]
