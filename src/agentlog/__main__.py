"""Entry point for `python -m agentlog` / `agentlog`.

Subcommands:
    agentlog parse FILE      Extract the result record from a saved execution log
    agentlog formats FILE    Show the detected log format and the strategy it selects

FILE may be ``-`` to read standard input.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import os
import sys


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


def _parse(path: str, *, strict: bool, retries: int | None, stats: bool) -> int:
    from agentlog.result_parser import ResultParseError, create_parser

    parser = create_parser(strict_validation=strict or None, retry_attempts=retries)
    try:
        record = asyncio.run(parser.parse_from_logs(_read(path)))
    except ResultParseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if stats:
            print(
                json.dumps(dataclasses.asdict(parser.metrics.get_stats()), indent=2),
                file=sys.stderr,
            )

    print(json.dumps(record, indent=2, ensure_ascii=False))
    return 0


def _formats(path: str) -> int:
    from agentlog.result_parser import StrategyFactory
    from agentlog.result_parser.strategies import detect_log_format

    blob = _read(path)
    strategy = StrategyFactory().get_best_strategy(blob)
    print(f"format:   {detect_log_format(blob).value}")
    print(f"strategy: {strategy.name} (priority {strategy.priority})")
    return 0


def main() -> None:
    from agentlog.config import get_settings
    from agentlog.logger import install_excepthook, set_level

    install_excepthook()
    if "LOG_LEVEL" not in os.environ:
        set_level(get_settings().logging.level)

    parser = argparse.ArgumentParser(
        prog="agentlog",
        description="Agent execution log result extraction",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    parse_cmd = sub.add_parser("parse", help="Extract the result record from an execution log")
    parse_cmd.add_argument("file", help="Execution log file, or - for stdin")
    parse_cmd.add_argument(
        "--strict", action="store_true", help="Reject records failing validation"
    )
    parse_cmd.add_argument("--retries", type=int, default=None, help="Retry attempts per parse")
    parse_cmd.add_argument("--stats", action="store_true", help="Print parser metrics to stderr")

    formats_cmd = sub.add_parser("formats", help="Show the detected format and selected strategy")
    formats_cmd.add_argument("file", help="Execution log file, or - for stdin")

    args = parser.parse_args()

    match args.command:
        case "parse":
            code = _parse(args.file, strict=args.strict, retries=args.retries, stats=args.stats)
        case "formats":
            code = _formats(args.file)
        case _:
            parser.error(f"unknown command: {args.command}")
    sys.exit(code)


if __name__ == "__main__":
    main()
