"""Tests for the parse strategies and the shared format probes."""

from __future__ import annotations

import json

import pytest
from conftest import plan_mode_line, result_line

from agentlog.result_parser.errors import EmptyInputError, NoMatchFoundError
from agentlog.result_parser.strategies import (
    FallbackStrategy,
    JSONStrategy,
    LogFormat,
    OptimizedJSONStrategy,
    PlanModeStrategy,
    StructuredTextStrategy,
    detect_log_format,
    extract_json_from_line,
)
from agentlog.result_parser.validator import ResultValidator

# ---------------------------------------------------------------------------
# Format probes
# ---------------------------------------------------------------------------


class TestFormatDetection:
    def test_json_blob(self):
        assert detect_log_format(result_line()) is LogFormat.JSON

    def test_plan_mode_blob_counts_as_json(self):
        assert detect_log_format(plan_mode_line()) is LogFormat.JSON

    def test_structured_text_blob(self):
        blob = "Result: type=result subtype=success is_error=false session_id=test-123"
        assert detect_log_format(blob) is LogFormat.STRUCTURED_TEXT

    def test_plain_text_blob(self):
        assert detect_log_format("Task finished after 3 turns") is LogFormat.PLAIN_TEXT

    def test_empty_blob(self):
        assert detect_log_format("") is LogFormat.UNKNOWN


class TestExtractJsonFromLine:
    def test_bare_json(self):
        assert extract_json_from_line('{"a": 1}') == '{"a": 1}'

    def test_stdout_marker(self):
        assert extract_json_from_line('2024-01-01T00:00:00Z STDOUT: {"a": 1}') == '{"a": 1}'

    def test_timestamp_and_level_prefix(self):
        assert extract_json_from_line('[12:34:56] INFO: {"a": 1}') == '{"a": 1}'

    def test_non_json_line(self):
        assert extract_json_from_line("building container...") == ""

    def test_custom_marker(self):
        assert extract_json_from_line('agent>> {"a": 1}', ("agent>> ",)) == '{"a": 1}'


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestJSONStrategy:
    def test_parses_result_line(self):
        blob = "\n".join(["Starting agent", '{"type":"system","subtype":"init"}', result_line()])
        strategy = JSONStrategy()
        assert strategy.can_parse(blob)
        record = strategy.parse(blob)
        assert record["type"] == "result"
        assert record["subtype"] == "success"
        assert record["session_id"] == "test-123"
        assert record["duration_ms"] == 1000

    def test_parses_prefixed_result_line(self):
        blob = (
            '[12:34:56] INFO: {"type":"result","subtype":"success","is_error":false,'
            '"session_id":"test-123","duration_ms":1000}'
        )
        strategy = JSONStrategy()
        assert strategy.can_parse(blob)
        assert strategy.parse(blob)["subtype"] == "success"

    def test_last_result_line_wins(self):
        blob = "\n".join([result_line(session_id="first"), "noise", result_line(session_id="last")])
        assert JSONStrategy().parse(blob)["session_id"] == "last"

    def test_usage_is_string_encoded(self):
        blob = result_line(usage={"output_tokens": 5, "input_tokens": 10})
        usage = JSONStrategy().parse(blob)["usage"]
        assert isinstance(usage, str)
        assert json.loads(usage) == {"input_tokens": 10, "output_tokens": 5}

    def test_rejects_result_without_session_id(self):
        blob = result_line(session_id="")
        with pytest.raises(NoMatchFoundError):
            JSONStrategy().parse(blob)

    def test_declines_plan_mode_blob(self):
        blob = plan_mode_line()
        assert not JSONStrategy().can_parse(blob)
        with pytest.raises(NoMatchFoundError):
            JSONStrategy().parse(blob)

    def test_probe_only_looks_at_tail(self):
        blob = "\n".join([result_line(), *["progress line"] * 20])
        strategy = JSONStrategy()
        assert not strategy.can_parse(blob)
        # The full scan still finds it
        assert strategy.parse(blob)["session_id"] == "test-123"

    def test_scan_is_bounded_by_max_lines(self):
        blob = "\n".join([result_line(), *["progress line"] * 20])
        with pytest.raises(NoMatchFoundError):
            JSONStrategy(max_lines=10).parse(blob)

    def test_empty_blob(self):
        with pytest.raises(EmptyInputError):
            JSONStrategy().parse("")


class TestOptimizedJSONStrategy:
    def test_only_engages_for_long_blobs(self):
        strategy = OptimizedJSONStrategy(max_lines=5)
        short = "\n".join(["a", "b", result_line()])
        long = "\n".join([*["noise"] * 10, result_line()])
        assert not strategy.can_parse(short)
        assert strategy.can_parse(long)
        assert strategy.parse(long)["session_id"] == "test-123"

    def test_runs_ahead_of_general_json(self):
        assert OptimizedJSONStrategy.priority < JSONStrategy.priority


# ---------------------------------------------------------------------------
# Plan mode
# ---------------------------------------------------------------------------


class TestPlanModeStrategy:
    def test_synthesizes_plan_mode_result(self):
        blob = "\n".join(['{"type":"system","subtype":"init"}', plan_mode_line("## Plan\nStep 1")])
        strategy = PlanModeStrategy()
        assert strategy.can_parse(blob)
        record = strategy.parse(blob)
        assert record["type"] == "result"
        assert record["subtype"] == "plan_mode"
        assert record["is_error"] is False
        assert record["result"] == "## Plan\nStep 1"
        assert record["session_id"] == "plan-session-1"
        assert record["duration_ms"] == 0
        assert record["total_cost_usd"] == 0.0
        assert ResultValidator(strict=True).validate(record) is None

    def test_generates_session_id_when_missing(self):
        line = json.loads(plan_mode_line())
        del line["session_id"]
        record = PlanModeStrategy().parse(json.dumps(line, separators=(",", ":")))
        assert record["session_id"].startswith("plan-mode-")
        assert ResultValidator().validate(record) is None

    def test_fails_without_plan_text(self):
        with pytest.raises(NoMatchFoundError):
            PlanModeStrategy().parse(plan_mode_line(plan=""))

    def test_declines_plain_result(self):
        assert not PlanModeStrategy().can_parse(result_line())

    def test_usage_carried_over(self):
        line = json.loads(plan_mode_line())
        line["message"]["usage"] = {"input_tokens": 3}
        record = PlanModeStrategy().parse(json.dumps(line, separators=(",", ":")))
        assert json.loads(record["usage"]) == {"input_tokens": 3}


class TestStrategyExclusivity:
    @pytest.mark.parametrize(
        "blob",
        [
            plan_mode_line(),
            "\n".join([result_line(), plan_mode_line()]),
            "\n".join([plan_mode_line(), result_line()]),
            result_line(),
        ],
    )
    def test_json_and_plan_mode_never_both_accept(self, blob):
        assert not (JSONStrategy().can_parse(blob) and PlanModeStrategy().can_parse(blob))

    def test_newest_shape_decides(self):
        plan_then_result = "\n".join([plan_mode_line(), result_line()])
        result_then_plan = "\n".join([result_line(), plan_mode_line()])
        assert JSONStrategy().can_parse(plan_then_result)
        assert PlanModeStrategy().can_parse(result_then_plan)

    def test_plan_only_blob_is_declined_by_json(self):
        blob = plan_mode_line()
        assert PlanModeStrategy().can_parse(blob)
        assert not JSONStrategy().can_parse(blob)

    def test_result_only_blob_is_declined_by_plan_mode(self):
        blob = result_line()
        assert JSONStrategy().can_parse(blob)
        assert not PlanModeStrategy().can_parse(blob)


# ---------------------------------------------------------------------------
# Structured text
# ---------------------------------------------------------------------------


class TestStructuredTextStrategy:
    def test_space_delimited_pairs(self):
        blob = "Result: type=result subtype=success is_error=false session_id=test-123"
        strategy = StructuredTextStrategy()
        assert strategy.can_parse(blob)
        record = strategy.parse(blob)
        assert record["type"] == "result"
        assert record["subtype"] == "success"
        assert record["is_error"] is False
        assert record["session_id"] == "test-123"

    def test_comma_delimited_pairs(self):
        blob = "Task completed: type=result, subtype=success, is_error=false, session_id=test-456"
        record = StructuredTextStrategy().parse(blob)
        assert record["session_id"] == "test-456"
        assert record["is_error"] is False

    def test_pipe_delimited_pairs_with_numbers(self):
        blob = (
            "type=result | subtype=error | is_error=true | session_id=s-9 | "
            "duration_ms=1500 | num_turns=3 | total_cost_usd=0.25"
        )
        record = StructuredTextStrategy().parse(blob)
        assert record["is_error"] is True
        assert record["duration_ms"] == 1500
        assert record["num_turns"] == 3
        assert record["total_cost_usd"] == 0.25

    def test_colon_pairs(self):
        blob = (
            "result: type: result, subtype: success, is_error: false, "
            "session_id: abc-1, num_turns: 2"
        )
        record = StructuredTextStrategy().parse(blob)
        assert record["type"] == "result"
        assert record["subtype"] == "success"
        assert record["session_id"] == "abc-1"
        assert record["num_turns"] == 2

    def test_quoted_values(self):
        blob = 'type=result subtype=success is_error=false session_id="quoted-1"'
        assert StructuredTextStrategy().parse(blob)["session_id"] == "quoted-1"

    def test_last_result_line_wins(self):
        blob = "\n".join(
            [
                "type=result subtype=error is_error=true session_id=old",
                "type=result subtype=success is_error=false session_id=new",
            ]
        )
        assert StructuredTextStrategy().parse(blob)["session_id"] == "new"

    def test_partial_result_line_does_not_hide_complete_one(self):
        blob = (
            "Result: type=result subtype=success is_error=false session_id=abc-1\n"
            "Result: subtype=error is_error=true duration_ms=5\n"
        )
        record = StructuredTextStrategy().parse(blob)
        assert record["session_id"] == "abc-1"
        assert record["subtype"] == "success"
        assert ResultValidator().is_valid(record)

    def test_only_partial_result_lines_raise_no_match(self):
        blob = "Result: subtype=error is_error=true duration_ms=5"
        with pytest.raises(NoMatchFoundError):
            StructuredTextStrategy().parse(blob)

    def test_multi_line_accumulation(self):
        blob = "\n".join(
            [
                "starting run",
                "session_id=multi-7",
                "is_error=false",
                "subtype=success",
                "type=result",
                "cleanup finished",
            ]
        )
        record = StructuredTextStrategy().parse(blob)
        assert record == {
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "session_id": "multi-7",
        }

    def test_unparseable_raises_no_match(self):
        with pytest.raises(NoMatchFoundError):
            StructuredTextStrategy().parse("type=task subtype=build\nnothing else")

    def test_declines_plan_mode_blob(self):
        blob = plan_mode_line() + "\ntype=result subtype=success session_id=x"
        assert not StructuredTextStrategy().can_parse(blob)


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------


class TestFallbackStrategy:
    @pytest.mark.parametrize(
        "blob",
        [
            "x",
            " ",
            "\n\n\n",
            "random gibberish \x00\x01 ☃",
            "{not json",
            "type=result",
            "error " * 1000,
            plan_mode_line(),
        ],
    )
    def test_total_for_non_empty_input(self, blob):
        strategy = FallbackStrategy()
        assert strategy.can_parse(blob)
        record = strategy.parse(blob)
        for field in ("type", "subtype", "is_error", "session_id"):
            assert field in record

    def test_degraded_record_when_nothing_recognized(self):
        record = FallbackStrategy().parse("the quick brown fox")
        assert record["subtype"] == "fallback"
        assert record["is_error"] is True
        assert record["result"] == "Failed to parse execution result"
        assert record["session_id"].startswith("fallback_")
        assert ResultValidator(strict=True).validate(record) is None

    def test_degraded_session_id_is_deterministic(self):
        a = FallbackStrategy().parse("same blob")
        b = FallbackStrategy().parse("same blob")
        c = FallbackStrategy().parse("other blob")
        assert a["session_id"] == b["session_id"] != c["session_id"]

    def test_success_heuristics(self):
        blob = "\n".join(
            [
                "session_id: run-42",
                "Task completed successfully",
                "took 12 seconds",
                "total cost $0.42",
                "used 7 turns",
            ]
        )
        record = FallbackStrategy().parse(blob)
        assert record["session_id"] == "run-42"
        assert record["subtype"] == "success"
        assert record["is_error"] is False
        assert record["duration_ms"] == 12_000
        assert record["total_cost_usd"] == 0.42
        assert record["num_turns"] == 7

    def test_numbers_next_to_punctuation(self):
        blob = "\n".join(
            [
                "Run finished",
                "elapsed 2.5s",
                "cost: $1.25, budget $10",
                "turn 3 of run-42",
            ]
        )
        record = FallbackStrategy().parse(blob)
        assert record["duration_ms"] == 2_500
        assert record["total_cost_usd"] == 1.25
        assert record["num_turns"] == 3

    def test_error_heuristics(self):
        record = FallbackStrategy().parse("Build failed with exception")
        assert record["is_error"] is True
        assert record["subtype"] == "error"
        assert record["session_id"].startswith("unknown_")

    def test_empty_blob_is_rejected(self):
        strategy = FallbackStrategy()
        assert not strategy.can_parse("")
        with pytest.raises(EmptyInputError):
            strategy.parse("")


class TestParseBatch:
    def test_batch_keeps_only_successes(self):
        blobs = [result_line(session_id="a"), "no result here", result_line(session_id="b")]
        records = JSONStrategy().parse_batch(blobs)
        assert [r["session_id"] for r in records] == ["a", "b"]
