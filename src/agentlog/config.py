"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Settings live in config.toml. Environment variables override it using ``__``
as the nested delimiter (e.g. ``PARSER__TIMEOUT_SECONDS=10``).

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from agentlog.config import get_settings

    s = get_settings()
    print(s.parser.timeout_seconds)
    print(s.streaming.channel_capacity)
"""

from __future__ import annotations

import os
import re

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

DEFAULT_REQUIRED_FIELDS = ["type", "subtype", "is_error", "session_id"]
DEFAULT_PARSE_TIMEOUT = 30.0

# Single-variable overrides kept for deployments that predate the nested layout
PARSER_TIMEOUT_ENV = "AGENTLOG_PARSER_TIMEOUT"
PARSER_STRICT_ENV = "AGENTLOG_PARSER_STRICT_VALIDATION"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TRUE_VALUES = {"1", "t", "true", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "off"}


# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class ParserConfig(_StrictModel):
    timeout_seconds: float = DEFAULT_PARSE_TIMEOUT
    strict_validation: bool = False
    retry_attempts: int = 2
    retry_backoff_ms: int = 100  # linear: attempt N waits N * backoff
    max_log_lines: int = 1000
    probe_lines: int = 10  # lines inspected by the cheap can_parse probes
    required_fields: list[str] = DEFAULT_REQUIRED_FIELDS
    allow_partial_data: bool = False
    log_prefix_markers: list[str] = ["STDOUT: ", "STDERR: "]
    strategy_cache_size: int = 16
    result_cache_size: int = 128

    @field_validator("timeout_seconds")
    @classmethod
    def default_non_positive_timeout(cls, v: float) -> float:
        return v if v > 0 else DEFAULT_PARSE_TIMEOUT

    @field_validator(
        "retry_attempts", "retry_backoff_ms", "strategy_cache_size", "result_cache_size"
    )
    @classmethod
    def clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @field_validator("max_log_lines", "probe_lines")
    @classmethod
    def clamp_positive(cls, v: int) -> int:
        return max(1, v)

    @field_validator("required_fields")
    @classmethod
    def default_empty_required(cls, v: list[str]) -> list[str]:
        return list(v) if v else list(DEFAULT_REQUIRED_FIELDS)

    @classmethod
    def from_env(cls, **overrides: object) -> ParserConfig:
        """Build a config from defaults plus the legacy single-variable overrides.

        Unparsable values are ignored rather than rejected.
        """
        data: dict[str, object] = {}
        if (raw := os.environ.get(PARSER_TIMEOUT_ENV)) is not None:
            timeout = parse_duration(raw)
            if timeout is not None:
                data["timeout_seconds"] = timeout
        if (raw := os.environ.get(PARSER_STRICT_ENV)) is not None:
            strict = parse_bool(raw)
            if strict is not None:
                data["strict_validation"] = strict
        data.update(overrides)
        return cls(**data)


class StreamingConfig(_StrictModel):
    channel_capacity: int = 100
    poll_interval_seconds: float = 1.0
    max_line_bytes: int = 1024 * 1024  # 1MB
    docker_cli: str = "docker"

    @field_validator("channel_capacity", "max_line_bytes")
    @classmethod
    def clamp_positive(cls, v: int) -> int:
        return max(1, v)

    @field_validator("poll_interval_seconds")
    @classmethod
    def clamp_interval(cls, v: float) -> float:
        return v if v > 0 else 1.0


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Env value helpers
# ---------------------------------------------------------------------------


def parse_duration(raw: str) -> float | None:
    """Parse ``45s`` / ``2m`` / ``500ms`` / ``1h`` / bare seconds into seconds."""
    match = _DURATION_RE.match(raw)
    if match is None:
        return None
    value = float(match.group(1)) * _DURATION_UNITS[match.group(2) or "s"]
    return value if value > 0 else None


def parse_bool(raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="config.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    parser: ParserConfig = ParserConfig()
    streaming: StreamingConfig = StreamingConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
