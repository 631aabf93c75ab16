"""Plan-mode extraction.

When the agent runs in plan mode it never prints a ``result`` object; the
last useful output is an assistant message calling the ``ExitPlanMode`` tool
with the plan as input. That message is normalized into a regular result
record with ``subtype="plan_mode"``.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from agentlog.result_parser.errors import EmptyInputError, NoMatchFoundError
from agentlog.result_parser.strategies.base import (
    DEFAULT_LOG_PREFIX_MARKERS,
    ParseStrategy,
    Record,
    contains_plan_mode,
    encode_usage,
    find_exit_plan_tool_use,
    iter_json_objects_reversed,
    newest_payload_kind,
)
from agentlog.result_parser.strategies.json_strategy import DEFAULT_MAX_LINES, DEFAULT_PROBE_LINES


class PlanModeStrategy(ParseStrategy):
    name = "plan_mode"
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
        if not blob or not contains_plan_mode(blob):
            return False
        return newest_payload_kind(blob, self.probe_lines, self.markers) == "plan_mode"

    def parse(self, blob: str) -> Record:
        if not blob:
            raise EmptyInputError("empty logs")
        for data in iter_json_objects_reversed(blob, self.max_lines, self.markers):
            record = self._to_result(data)
            if record is not None:
                return record
        raise NoMatchFoundError("no valid plan mode result JSON found")

    @staticmethod
    def _to_result(data: Record) -> Record | None:
        tool_use = find_exit_plan_tool_use(data)
        if tool_use is None:
            return None
        tool_input = tool_use.get("input")
        plan = tool_input.get("plan") if isinstance(tool_input, dict) else None
        if not isinstance(plan, str) or not plan:
            return None

        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            session_id = f"plan-mode-{int(time.time())}"

        record: Record = {
            "type": "result",
            "subtype": "plan_mode",
            "is_error": False,
            "session_id": session_id,
            "duration_ms": 0,
            "duration_api_ms": 0,
            # num_turns is bounded to 1..1000; the plan itself counts as one turn
            "num_turns": 1,
            "total_cost_usd": 0.0,
            "result": plan,
        }
        usage = data["message"].get("usage")
        if usage is not None:
            record["usage"] = encode_usage(usage)
        return record
