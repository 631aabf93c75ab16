"""JSON result-line extraction.

The agent CLI prints a single ``{"type": "result", ...}`` object when a run
ends, so the blob is scanned from the end and the last matching line wins.
Plan-mode assistant messages are left to ``PlanModeStrategy``.
"""

from __future__ import annotations

from collections.abc import Sequence

from agentlog.result_parser.errors import EmptyInputError, NoMatchFoundError
from agentlog.result_parser.strategies.base import (
    DEFAULT_LOG_PREFIX_MARKERS,
    ParseStrategy,
    Record,
    contains_json,
    encode_usage,
    is_plan_mode_payload,
    iter_json_objects_reversed,
    newest_payload_kind,
)

DEFAULT_MAX_LINES = 1000
DEFAULT_PROBE_LINES = 10


def is_result_payload(data: Record) -> bool:
    """True for a complete, non-plan-mode result object."""
    if is_plan_mode_payload(data):
        return False
    if data.get("type") != "result":
        return False
    if "subtype" not in data or "is_error" not in data:
        return False
    session_id = data.get("session_id")
    return isinstance(session_id, str) and bool(session_id)


class JSONStrategy(ParseStrategy):
    name = "json"
    priority = 1

    def __init__(
        self,
        *markers: str,
        max_lines: int = DEFAULT_MAX_LINES,
        probe_lines: int = DEFAULT_PROBE_LINES,
    ) -> None:
        self.markers: Sequence[str] = markers or DEFAULT_LOG_PREFIX_MARKERS
        self.max_lines = max_lines
        self.probe_lines = probe_lines

    def can_parse(self, blob: str) -> bool:
        if not blob or not contains_json(blob):
            return False
        return newest_payload_kind(blob, self.probe_lines, self.markers) == "result"

    def parse(self, blob: str) -> Record:
        if not blob:
            raise EmptyInputError("empty logs")
        for data in iter_json_objects_reversed(blob, self.max_lines, self.markers):
            if is_result_payload(data):
                return self._normalize(data)
        raise NoMatchFoundError("no valid result JSON found")

    @staticmethod
    def _normalize(data: Record) -> Record:
        record = dict(data)
        if "usage" in record and record["usage"] is not None:
            record["usage"] = encode_usage(record["usage"])
        return record


class OptimizedJSONStrategy(JSONStrategy):
    """Size-capped JSON scan for very long transcripts.

    Only engages when the blob has more lines than ``max_lines``; shorter
    blobs fall through to the general ``JSONStrategy``.
    """

    name = "json_optimized"
    priority = 0

    def can_parse(self, blob: str) -> bool:
        if blob.count("\n") < self.max_lines:
            return False
        return super().can_parse(blob)
