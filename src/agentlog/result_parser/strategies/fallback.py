"""Last-resort heuristics.

``FallbackStrategy`` accepts any non-empty blob and never raises for one: it
spots success/error keywords and a few numbers line by line, fills in whatever
required fields are still missing, and when nothing at all was recognized
returns an explicit degraded record (``subtype="fallback"``,
``is_error=True``) keyed by a hash of the blob.
"""

from __future__ import annotations

import hashlib
import re
import time

from agentlog.result_parser.errors import EmptyInputError
from agentlog.result_parser.strategies.base import ParseStrategy, Record
from agentlog.result_parser.validator.rules import MAX_SESSION_ID_LENGTH, MAX_TURNS

FALLBACK_RESULT_TEXT = "Failed to parse execution result"

_ERROR_TERMS = re.compile(
    r"\b(error|errors|failed|failure|exception|panic|timeout|timed out|abort|aborted|"
    r"cancelled|canceled|invalid)\b"
)
_SUCCESS_TERMS = re.compile(
    r"\b(success|successful|successfully|completed|finished|done|ok|passed)\b"
)
_SESSION_ID_RE = re.compile(
    r"(?:session[_\s-]?id|\bsid)\b[\"']?\s*[:=]?\s*[\"']?([A-Za-z0-9_-]+)", re.IGNORECASE
)
_DURATION_WORDS = ("duration", "elapsed", "took", "time")
_INT_RE = re.compile(r"\d+")
_DECIMAL_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def _digits(token: str) -> int:
    """First integer spelled by *token*, 0 when there is none."""
    match = _INT_RE.search(token)
    return int(match.group()[:10]) if match else 0


def _decimal(token: str) -> float:
    """First decimal number spelled by *token* (``$0.42,`` -> 0.42), else 0."""
    match = _DECIMAL_RE.search(token)
    return float(match.group()) if match else 0.0


def blob_fingerprint(blob: str) -> str:
    return hashlib.sha256(blob.encode("utf-8", errors="replace")).hexdigest()[:16]


class FallbackStrategy(ParseStrategy):
    name = "fallback"
    priority = 10

    def can_parse(self, blob: str) -> bool:
        return bool(blob)

    def parse(self, blob: str) -> Record:
        if not blob:
            raise EmptyInputError("empty logs")

        record: Record = {}
        for line in blob.split("\n"):
            line = line.strip()
            if line:
                self._extract_from_line(line, record)

        if not record:
            return self.degraded_record(blob)
        self._fill_missing_fields(record)
        return record

    @staticmethod
    def degraded_record(blob: str) -> Record:
        return {
            "type": "result",
            "subtype": "fallback",
            "is_error": True,
            "session_id": f"fallback_{blob_fingerprint(blob)}",
            "result": FALLBACK_RESULT_TEXT,
            "duration_ms": 0,
            "num_turns": 1,
        }

    def _extract_from_line(self, line: str, record: Record) -> None:
        lowered = line.lower()

        if match := _SESSION_ID_RE.search(line):
            record["session_id"] = match.group(1)[:MAX_SESSION_ID_LENGTH]

        if _ERROR_TERMS.search(lowered):
            record["is_error"] = True
            record["subtype"] = "error"
        elif _SUCCESS_TERMS.search(lowered):
            record["is_error"] = False
            record["subtype"] = "success"

        words = line.split()
        if duration := self._duration_ms(words):
            record["duration_ms"] = duration
        if cost := self._cost(lowered, words):
            record["total_cost_usd"] = cost
        if turns := self._turns(lowered, words):
            record["num_turns"] = turns

    @staticmethod
    def _duration_ms(words: list[str]) -> int:
        for i, word in enumerate(words[:-1]):
            lowered = word.lower()
            if any(term in lowered for term in _DURATION_WORDS):
                value = _decimal(words[i + 1])
                if value > 0:
                    # Small values are taken to be seconds
                    return int(value * 1000) if value < 1000 else int(value)
        return 0

    @staticmethod
    def _cost(lowered: str, words: list[str]) -> float:
        if "cost" not in lowered and "$" not in lowered and "usd" not in lowered:
            return 0.0
        for word in words:
            value = _decimal(word)
            if value > 0:
                return value
        return 0.0

    @staticmethod
    def _turns(lowered: str, words: list[str]) -> int:
        if "turn" not in lowered:
            return 0
        for word in words:
            value = _digits(word)
            if 0 < value < MAX_TURNS:
                return value
        return 0

    @staticmethod
    def _fill_missing_fields(record: Record) -> None:
        record.setdefault("type", "result")
        if "subtype" not in record:
            record["subtype"] = "error" if record.get("is_error") is True else "success"
        record.setdefault("is_error", False)
        record.setdefault("session_id", f"unknown_{int(time.time())}")
