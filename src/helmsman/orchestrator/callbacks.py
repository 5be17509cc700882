"""Display callbacks for turns and autoplay.

The turn engine and autoplay coordinator report progress through these
bundles. Every hook except ``AutoplayCallbacks.on_turn`` is optional and
display-only: an exception raised by one is logged and ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from helmsman.models.messages import Message

logger = logging.getLogger(__name__)


def _safe_call(name: str, fn: Callable[..., Any] | None, *args: Any) -> None:
    if fn is None:
        return
    try:
        fn(*args)
    except Exception:
        logger.debug("%s callback error", name, exc_info=True)


@dataclass
class TurnCallbacks:
    """Hooks fired by the turn engine, in production order.

    Attributes:
        on_message: Every message the turn produces (assistant and tool).
        on_tool_call_start: Once per round, before that round's tools run.
        on_reasoning: Model reasoning text, when the backend returns any.
        on_error: The error that aborted the turn.
        on_warning: Recovered problems (e.g. a tool call's transport failed).
    """

    on_message: Callable[[Message], None] | None = None
    on_tool_call_start: Callable[[], None] | None = None
    on_reasoning: Callable[[str], None] | None = None
    on_error: Callable[[BaseException], None] | None = None
    on_warning: Callable[[str], None] | None = None

    def message(self, msg: Message) -> None:
        _safe_call("on_message", self.on_message, msg)

    def tool_call_start(self) -> None:
        _safe_call("on_tool_call_start", self.on_tool_call_start)

    def reasoning(self, text: str) -> None:
        _safe_call("on_reasoning", self.on_reasoning, text)

    def error(self, exc: BaseException) -> None:
        _safe_call("on_error", self.on_error, exc)

    def warning(self, text: str) -> None:
        _safe_call("on_warning", self.on_warning, text)


@dataclass
class AutoplayCallbacks:
    """Hooks for the autoplay coordinator.

    ``on_turn`` runs one turn with the autoplay message and raises on
    failure; it is the only hook whose exceptions matter.
    """

    on_turn: Callable[[str], Any]
    on_started: Callable[[str, float], None] | None = None
    on_stopped: Callable[[], None] | None = None
    on_error: Callable[[BaseException], None] | None = None

    def started(self, message: str, interval: float) -> None:
        _safe_call("on_started", self.on_started, message, interval)

    def stopped(self) -> None:
        _safe_call("on_stopped", self.on_stopped)

    def error(self, exc: BaseException) -> None:
        _safe_call("on_error", self.on_error, exc)


def logging_turn_callbacks(log: logging.Logger | None = None) -> TurnCallbacks:
    """TurnCallbacks that write every event to a logger.

    For headless runs where no display is attached.
    """
    log = log or logger

    def on_message(msg: Message) -> None:
        if msg.role == "tool":
            log.info("Tool result %s: %.200s", msg.tool_call_id, msg.content)
        elif msg.tool_calls:
            log.info(
                "Assistant requested: %s", ", ".join(tc.name for tc in msg.tool_calls)
            )
        else:
            log.info("%s: %s", msg.role.capitalize(), msg.content)

    return TurnCallbacks(
        on_message=on_message,
        on_reasoning=lambda text: log.debug("Reasoning: %s", text),
        on_error=lambda exc: log.error("Turn failed: %s", exc),
        on_warning=lambda text: log.warning("%s", text),
    )
