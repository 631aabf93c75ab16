"""Key/value text extraction for runners that log results as plain text.

Two passes, both newest-first:

1. a single-line pass over lines that announce a result
   (``type=result``, ``TYPE=RESULT`` or ``result:``), needing at least three
   recognized keys on that one line;
2. a multi-line pass that enters a "result block" at the last line
   mentioning ``result`` and keeps merging recognized keys from earlier lines
   until the required fields are present.
"""

from __future__ import annotations

import re
from typing import Any

from agentlog.result_parser.errors import EmptyInputError, NoMatchFoundError
from agentlog.result_parser.strategies.base import (
    ParseStrategy,
    Record,
    contains_plan_mode,
    contains_structured_text,
)
from agentlog.result_parser.validator.rules import REQUIRED_FIELDS

KNOWN_KEYS = (
    "type",
    "subtype",
    "is_error",
    "session_id",
    "duration_ms",
    "duration_api_ms",
    "num_turns",
    "result",
    "total_cost_usd",
    "usage",
)
MIN_LINE_KEYS = 3
MIN_BLOCK_KEYS = 4

_VALUE = r"(\"[^\"]*\"|'[^']*'|[^\s,|;]+)"
_EQ_PAIR_RE = re.compile(r"(?<![\w-])([A-Za-z_]+)\s*=\s*" + _VALUE)
# Possessive, so "result: type: result" never reads "type" as the value of "result"
_COLON_VALUE = r"(\"[^\"]*\"|'[^']*'|[^\s,|;:]++)(?!:)"
_COLON_PAIR_RE = re.compile(r"(?<![\w-])([A-Za-z_]+):\s*" + _COLON_VALUE)
_RESULT_LINE_RE = re.compile(r"type\s*[=:]\s*[\"']?result\b|result:", re.IGNORECASE)
# Leading level tags some runners put in front of a key ("INFO duration_ms 5")
_KEY_PREFIXES = ("result ", "info ", "debug ", "warn ", "error ")

_TRUE = {"1", "t", "true", "yes"}
_FALSE = {"0", "f", "false", "no"}


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def coerce_value(key: str, raw: str) -> Any:
    """Convert a textual value to the type the result schema expects.

    Values that do not convert are kept as text so the validator can report
    them.
    """
    value = _strip_quotes(raw.strip())
    match key:
        case "is_error":
            lowered = value.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            return value
        case "duration_ms" | "duration_api_ms" | "num_turns":
            try:
                return int(value)
            except ValueError:
                return value
        case "total_cost_usd":
            try:
                return float(value.lstrip("$"))
            except ValueError:
                return value
        case _:
            return value


def _pairs(regex: re.Pattern[str], text: str) -> Record:
    found: Record = {}
    for key, value in regex.findall(text):
        key = key.lower()
        if key in KNOWN_KEYS and key not in found:
            found[key] = coerce_value(key, value)
    return found


def parse_key_values(text: str) -> Record:
    """Recognized ``key=value`` pairs, or ``key: value`` pairs when there are none."""
    return _pairs(_EQ_PAIR_RE, text) or _pairs(_COLON_PAIR_RE, text)


def _normalize_key(raw: str) -> str | None:
    key = raw.strip().lower()
    for prefix in _KEY_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix) :]
    if key in KNOWN_KEYS:
        return key
    # Longest first so "duration_api_ms" is not taken for "duration_ms"
    for known in sorted(KNOWN_KEYS, key=len, reverse=True):
        if known in key:
            return known
    return None


def _split_loose_pair(line: str) -> tuple[str, str] | None:
    """Split ``key=value``, ``key: value`` or ``key value`` on the first separator."""
    for sep in ("=", ":", " "):
        key, found, value = line.partition(sep)
        if found and key.strip() and value.strip():
            return key, value
    return None


def is_complete_result(record: Record) -> bool:
    if any(field not in record for field in REQUIRED_FIELDS):
        return False
    if record.get("type") != "result":
        return False
    session_id = record.get("session_id")
    return isinstance(session_id, str) and bool(session_id)


class StructuredTextStrategy(ParseStrategy):
    name = "structured_text"
    priority = 2

    def can_parse(self, blob: str) -> bool:
        if not blob or contains_plan_mode(blob):
            return False
        return contains_structured_text(blob)

    def parse(self, blob: str) -> Record:
        if not blob:
            raise EmptyInputError("empty logs")
        lines = blob.split("\n")

        # Partial result lines never hide an earlier complete one
        for line in reversed(lines):
            record = self._parse_result_line(line.strip())
            if record is not None and is_complete_result(record):
                return record

        record = self._parse_multi_line(lines)
        if record is not None:
            return record
        raise NoMatchFoundError("no structured result found in text")

    @staticmethod
    def _parse_result_line(line: str) -> Record | None:
        if not line or not _RESULT_LINE_RE.search(line):
            return None
        record = parse_key_values(line)
        if len(record) < MIN_LINE_KEYS:
            # "Result: ..." style lines carry the pairs after the first colon
            _, found, rest = line.partition(":")
            record = parse_key_values(rest) if found else {}
        return record if len(record) >= MIN_LINE_KEYS else None

    @staticmethod
    def _parse_multi_line(lines: list[str]) -> Record | None:
        record: Record = {}
        in_block = False
        for raw in reversed(lines):
            line = raw.strip()
            if not line:
                continue
            if "result" in line.lower():
                in_block = True
            if not in_block:
                continue

            pairs = parse_key_values(line)
            if not pairs and (loose := _split_loose_pair(line)):
                key = _normalize_key(loose[0])
                if key is not None:
                    pairs = {key: coerce_value(key, loose[1])}
            for key, value in pairs.items():
                # Scanning backward, so the later line already set the newest value
                record.setdefault(key, value)

            if len(record) >= MIN_BLOCK_KEYS and is_complete_result(record):
                return record
        return None
