"""Parser health counters.

One ``ParseMetrics`` is constructed per parser (or shared explicitly between
parsers) and injected; there is no module-level instance. Counters are only
touched from coroutines on the event loop, never from the worker threads
that run strategies, so plain ints are enough. Derived values (success rate,
average latency) are computed in ``get_stats`` rather than stored.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ParseStats:
    attempts: int = 0
    successes: int = 0
    errors: int = 0
    retries: int = 0
    validation_errors: int = 0
    success_rate: float = 0.0
    avg_parse_time_ms: float = 0.0
    strategy_usage: dict[str, int] = field(default_factory=dict)
    strategy_successes: dict[str, int] = field(default_factory=dict)
    error_types: dict[str, int] = field(default_factory=dict)


class ParseMetrics:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Zero every counter. Meant for test isolation."""
        self._attempts = 0
        self._successes = 0
        self._errors = 0
        self._retries = 0
        self._validation_errors = 0
        self._total_parse_seconds = 0.0
        self._strategy_usage: Counter[str] = Counter()
        self._strategy_successes: Counter[str] = Counter()
        self._error_types: Counter[str] = Counter()

    def record_attempt(self, duration: float) -> None:
        """Count one parse call that took *duration* seconds."""
        self._attempts += 1
        self._total_parse_seconds += duration

    def record_success(self, strategy: str) -> None:
        self._successes += 1
        self._strategy_successes[strategy] += 1

    def record_error(self, kind: str) -> None:
        self._errors += 1
        self._error_types[kind] += 1

    def record_retry(self) -> None:
        self._retries += 1

    def record_validation_error(self) -> None:
        self._validation_errors += 1

    def record_strategy_usage(self, strategy: str) -> None:
        self._strategy_usage[strategy] += 1

    def get_stats(self) -> ParseStats:
        attempts = self._attempts
        return ParseStats(
            attempts=attempts,
            successes=self._successes,
            errors=self._errors,
            retries=self._retries,
            validation_errors=self._validation_errors,
            success_rate=self._successes / attempts if attempts else 0.0,
            avg_parse_time_ms=self._total_parse_seconds * 1000 / attempts if attempts else 0.0,
            strategy_usage=dict(self._strategy_usage),
            strategy_successes=dict(self._strategy_successes),
            error_types=dict(self._error_types),
        )
