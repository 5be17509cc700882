"""Turn engine and autoplay configuration types.

Provides TurnState, AutoplayState and TurnConfig.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from helmsman.engine.compression import (
    DEFAULT_ACTION_THRESHOLD,
    DEFAULT_TRUNCATE_HEAD,
    validate_truncation,
)
from helmsman.models.config import DEFAULT_HISTORY_KEEP_TURNS, DEFAULT_MAX_TOOL_ROUNDS


class TurnState(str, enum.Enum):
    """States a turn engine moves through while processing one turn."""

    IDLE = "idle"
    CALLING_MODEL = "calling_model"
    AWAITING_TOOL_RESULTS = "awaiting_tool_results"
    DONE = "done"
    FAILED = "failed"


class AutoplayState(str, enum.Enum):
    """States of the autoplay coordinator."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass
class TurnConfig:
    """Configuration for a turn engine.

    Mutable dataclass: callers may adjust settings between turns.

    Attributes:
        max_rounds: Maximum model calls per turn before giving up.
        keep_full_turns: Most recent turns sent to the model uncompressed.
        deadline_seconds: Optional wall-clock budget per turn, checked
            between rounds. None disables it.
        action_threshold: Older action-tool results longer than this are
            truncated.
        truncate_head: Characters kept from a truncated result's start.
        truncate_tail: Characters kept from a truncated result's end.
    """

    max_rounds: int = DEFAULT_MAX_TOOL_ROUNDS
    keep_full_turns: int = DEFAULT_HISTORY_KEEP_TURNS
    deadline_seconds: float | None = None
    action_threshold: int = DEFAULT_ACTION_THRESHOLD
    truncate_head: int = DEFAULT_TRUNCATE_HEAD
    truncate_tail: int = 0

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if self.keep_full_turns < 1:
            raise ValueError("keep_full_turns must be at least 1")
        if self.deadline_seconds is not None and self.deadline_seconds < 0:
            raise ValueError("deadline_seconds must be non-negative")
        validate_truncation(self.action_threshold, self.truncate_head, self.truncate_tail)
