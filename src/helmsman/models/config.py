"""Configuration models for Helmsman.

HelmsmanConfig holds process-wide settings. It can be constructed
directly or read from ``HELMSMAN_*`` environment variables.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from helmsman.exceptions import ConfigurationError

# Fixed backoff sequence for transient upstream failures (seconds).
DEFAULT_RETRY_DELAYS: tuple[float, ...] = (2.0, 5.0, 10.0)

# Upstream game server tick duration (seconds).
GAME_TICK_SECONDS: float = 10.0

# Expected tool calls per turn, used to size the autoplay interval.
AVG_TOOL_CALLS_PER_TURN: int = 10

# game tick * tool calls per turn * 0.75
DEFAULT_AUTOPLAY_INTERVAL: float = AVG_TOOL_CALLS_PER_TURN * GAME_TICK_SECONDS * 0.75

DEFAULT_MAX_TOOL_ROUNDS: int = 20
DEFAULT_HISTORY_KEEP_TURNS: int = 10
DEFAULT_AUTOPLAY_MAX_FAILURES: int = 3

_ENV_PREFIX = "HELMSMAN_"


class HelmsmanConfig(BaseModel):
    """Process-wide Helmsman settings."""

    upstream_url: str = "http://localhost:3000/mcp"
    db_path: str = ".helmsman.db"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: Optional[float] = None
    max_tool_rounds: int = Field(default=DEFAULT_MAX_TOOL_ROUNDS, ge=1)
    history_keep_turns: int = Field(default=DEFAULT_HISTORY_KEEP_TURNS, ge=1)
    autoplay_interval: float = Field(default=DEFAULT_AUTOPLAY_INTERVAL, gt=0)
    autoplay_max_failures: int = Field(default=DEFAULT_AUTOPLAY_MAX_FAILURES, ge=1)
    retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS
    request_timeout: float = Field(default=30.0, gt=0)
    system_prompt_file: Optional[str] = None

    @field_validator("retry_delays", mode="before")
    @classmethod
    def _parse_delays(cls, value: object) -> object:
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return tuple(float(p) for p in parts)
        return value

    @field_validator("retry_delays")
    @classmethod
    def _check_delays(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if not value:
            raise ValueError("retry_delays must contain at least one delay")
        if any(d < 0 for d in value):
            raise ValueError("retry_delays must be non-negative")
        return value

    @classmethod
    def from_env(cls, **overrides: object) -> HelmsmanConfig:
        """Build a config from ``HELMSMAN_*`` environment variables.

        Keyword overrides that are not None win over the environment.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        try:
            return cls(**values)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
