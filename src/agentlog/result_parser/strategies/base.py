"""Strategy contract and the cheap format probes shared by all strategies.

A strategy turns an execution log blob into a result record (a plain field
map). ``can_parse`` must stay cheap: keyword probing and at most a handful of
tail lines. ``parse`` does the real work and raises ``NoMatchFoundError`` when
nothing usable is found.

Strategies are synchronous and pure; the parser runs them in a worker thread
so a slow parse never blocks the event loop and caller cancellation unwinds
at the await.
"""

from __future__ import annotations

import enum
import json
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, TypeAlias

from agentlog.result_parser.errors import ResultParseError

DEFAULT_LOG_PREFIX_MARKERS = ("STDOUT: ", "STDERR: ")

# Optional "[HH:MM:SS]" timestamp then an optional "LEVEL:" tag before the JSON body
_PREFIXED_JSON_RE = re.compile(r"^(?:\[\d{2}:\d{2}:\d{2}\]\s*)?(?:\w+:\s*)?(\{.*\})\s*$")

_JSON_INDICATORS = ('"type":', '"subtype":', '"session_id":', '{"', "}")
_STRUCTURED_INDICATORS = ("type=", "subtype=", "session_id=", "result=")
_PLAN_MODE_INDICATORS = (
    '"type":"assistant"',
    '"name":"ExitPlanMode"',
    '"tool_use"',
    "ExitPlanMode",
)

EXIT_PLAN_MODE_TOOL = "ExitPlanMode"

Record: TypeAlias = dict[str, Any]


class LogFormat(enum.StrEnum):
    UNKNOWN = "unknown"
    JSON = "json"
    STRUCTURED_TEXT = "structured_text"
    PLAIN_TEXT = "plain_text"


def _count_indicators(blob: str, indicators: Iterable[str]) -> int:
    return sum(1 for indicator in indicators if indicator in blob)


def contains_json(blob: str) -> bool:
    return _count_indicators(blob, _JSON_INDICATORS) >= 3


def contains_structured_text(blob: str) -> bool:
    return _count_indicators(blob, _STRUCTURED_INDICATORS) >= 2


def contains_plan_mode(blob: str) -> bool:
    return _count_indicators(blob, _PLAN_MODE_INDICATORS) >= 2


def detect_log_format(blob: str) -> LogFormat:
    """Coarse keyword-density fingerprint of a blob."""
    if not blob:
        return LogFormat.UNKNOWN
    # Plan-mode transcripts are JSON too
    if contains_plan_mode(blob) or contains_json(blob):
        return LogFormat.JSON
    if contains_structured_text(blob):
        return LogFormat.STRUCTURED_TEXT
    return LogFormat.PLAIN_TEXT


def tail_lines(blob: str, limit: int) -> list[str]:
    """The last *limit* lines of *blob*, in original order."""
    lines = blob.split("\n")
    return lines[-limit:] if len(lines) > limit else lines


def extract_json_from_line(line: str, markers: Sequence[str] = DEFAULT_LOG_PREFIX_MARKERS) -> str:
    """Return the JSON object text carried by a log line, or ``""``."""
    line = line.strip()
    for marker in markers:
        idx = line.find(marker)
        if idx != -1:
            candidate = line[idx + len(marker) :].strip()
            if candidate.startswith("{") and candidate.endswith("}"):
                return candidate
    match = _PREFIXED_JSON_RE.match(line)
    if match:
        return match.group(1)
    if line.startswith("{") and line.endswith("}"):
        return line
    return ""


def iter_json_objects_reversed(
    blob: str,
    max_lines: int,
    markers: Sequence[str] = DEFAULT_LOG_PREFIX_MARKERS,
) -> Iterator[Record]:
    """Yield JSON objects found in the last *max_lines* lines, newest first."""
    for line in reversed(tail_lines(blob, max_lines)):
        text = extract_json_from_line(line, markers)
        if not text:
            continue
        try:
            data = json.loads(text)
        except ValueError:
            continue
        if isinstance(data, dict):
            yield data


def find_exit_plan_tool_use(data: Record) -> Record | None:
    """The ``ExitPlanMode`` tool_use entry of an assistant message, if any."""
    if data.get("type") != "assistant":
        return None
    message = data.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for item in content:
        if (
            isinstance(item, dict)
            and item.get("type") == "tool_use"
            and item.get("name") == EXIT_PLAN_MODE_TOOL
        ):
            return item
    return None


def is_plan_mode_payload(data: Record) -> bool:
    return find_exit_plan_tool_use(data) is not None


def newest_payload_kind(
    blob: str,
    probe_lines: int,
    markers: Sequence[str] = DEFAULT_LOG_PREFIX_MARKERS,
) -> str | None:
    """Kind of the newest result-like object in the tail: ``"result"``, ``"plan_mode"`` or None.

    Both JSON probes key off this so at most one of them claims a blob.
    """
    for data in iter_json_objects_reversed(blob, probe_lines, markers):
        if is_plan_mode_payload(data):
            return "plan_mode"
        if data.get("type") == "result":
            return "result"
    return None


def encode_usage(usage: Any) -> str:
    """Usage stats are stored string-encoded; structured values become JSON."""
    if isinstance(usage, str):
        return usage
    return json.dumps(usage, separators=(",", ":"), sort_keys=True)


class ParseStrategy(ABC):
    """A pluggable way of extracting a result record from a log blob."""

    name: str = ""
    priority: int = 100  # lower runs first

    @abstractmethod
    def can_parse(self, blob: str) -> bool: ...

    @abstractmethod
    def parse(self, blob: str) -> Record: ...

    def parse_batch(self, blobs: Iterable[str]) -> list[Record]:
        """Parse many blobs, keeping only the ones that produced a record."""
        results: list[Record] = []
        for blob in blobs:
            try:
                results.append(self.parse(blob))
            except ResultParseError:
                continue
        return results

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"
