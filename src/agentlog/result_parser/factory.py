"""Strategy selection.

``StrategyFactory`` owns the ordered strategy list and picks the first one
whose ``can_parse`` accepts a blob. ``AdaptiveStrategyFactory`` remembers the
pick per coarse log format so repeated blobs of the same shape skip most of
the probing.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from agentlog.config import ParserConfig, get_settings
from agentlog.result_parser.strategies import (
    FallbackStrategy,
    JSONStrategy,
    OptimizedJSONStrategy,
    ParseStrategy,
    PlanModeStrategy,
    StructuredTextStrategy,
    detect_log_format,
)

if TYPE_CHECKING:
    from agentlog.result_parser.parser import ResultParser


def default_parser_config() -> ParserConfig:
    """Parser config from Settings, with the legacy env overrides applied underneath."""
    return ParserConfig.from_env(**get_settings().parser.model_dump(exclude_unset=True))


class StrategyFactory:
    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or default_parser_config()
        self._strategies = self._default_strategies()
        self._custom: list[ParseStrategy] = []

    def _default_strategies(self) -> list[ParseStrategy]:
        markers = tuple(self.config.log_prefix_markers)
        limits = {"max_lines": self.config.max_log_lines, "probe_lines": self.config.probe_lines}
        return [
            OptimizedJSONStrategy(*markers, **limits),
            JSONStrategy(*markers, **limits),
            PlanModeStrategy(*markers, **limits),
            StructuredTextStrategy(),
            FallbackStrategy(),
        ]

    def register_strategy(self, strategy: ParseStrategy) -> None:
        """Add a custom strategy; it joins the priority ordering on the next lookup."""
        self._custom.append(strategy)

    def create_strategies(self) -> list[ParseStrategy]:
        """Every strategy in ascending priority (stable for equal priorities)."""
        return sorted([*self._strategies, *self._custom], key=lambda s: s.priority)

    def get_best_strategy(self, blob: str) -> ParseStrategy:
        for strategy in self.create_strategies():
            if strategy.can_parse(blob):
                return strategy
        return FallbackStrategy()


class AdaptiveStrategyFactory(StrategyFactory):
    """Memoizes the chosen strategy per detected log format.

    A cached strategy is re-probed with ``can_parse`` before reuse, since two
    JSON blobs (a result line and a plan-mode transcript, say) share a
    format key but need different strategies.
    """

    def __init__(self, config: ParserConfig | None = None, max_cache: int | None = None) -> None:
        super().__init__(config)
        self.max_cache = self.config.strategy_cache_size if max_cache is None else max_cache
        self._cache: dict[str, ParseStrategy] = {}
        self._hits = 0
        self._misses = 0
        # Batch workers share one parser and therefore one factory
        self._lock = threading.Lock()

    def get_best_strategy(self, blob: str) -> ParseStrategy:
        key = detect_log_format(blob).value
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None and cached.can_parse(blob):
            with self._lock:
                self._hits += 1
            return cached

        strategy = super().get_best_strategy(blob)
        with self._lock:
            self._misses += 1
            if key in self._cache or len(self._cache) < self.max_cache:
                self._cache[key] = strategy
        return strategy

    def cache_info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._cache),
                "max_cache": self.max_cache,
                "formats": {key: s.name for key, s in self._cache.items()},
            }

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = self._misses = 0


def create_parser(
    config: ParserConfig | None = None,
    *,
    strategy: ParseStrategy | None = None,
    timeout: float | None = None,
    retry_attempts: int | None = None,
    strict_validation: bool | None = None,
    adaptive: bool = False,
    **options: Any,
) -> ResultParser:
    """Build a ``ResultParser`` with the usual overrides applied to *config*.

    Remaining keyword arguments (``validator``, ``metrics``, the persistence
    collaborators) are passed to the parser unchanged.
    """
    from agentlog.result_parser.parser import ResultParser

    config = config or default_parser_config()
    updates: dict[str, Any] = {}
    if timeout is not None:
        updates["timeout_seconds"] = timeout
    if retry_attempts is not None:
        updates["retry_attempts"] = retry_attempts
    if strict_validation is not None:
        updates["strict_validation"] = strict_validation
    if updates:
        # model_copy skips validation, so go through the constructor
        config = ParserConfig(**{**config.model_dump(), **updates})

    factory = AdaptiveStrategyFactory(config) if adaptive else StrategyFactory(config)
    return ResultParser(config, strategy_factory=factory, strategy=strategy, **options)
