"""Agent: one session's conversation, turn engine and autoplay together.

Turns are single-flight per agent: a user-driven turn and an
autoplay-driven turn never run at the same time. Whichever arrives second
blocks until the first finishes.
"""

from __future__ import annotations

import logging
import threading

from helmsman.models.config import DEFAULT_AUTOPLAY_INTERVAL, DEFAULT_AUTOPLAY_MAX_FAILURES
from helmsman.models.messages import Message
from helmsman.orchestrator.autoplay import AutoplayCoordinator, AutoplayStatus
from helmsman.orchestrator.callbacks import AutoplayCallbacks, TurnCallbacks
from helmsman.orchestrator.config import AutoplayState
from helmsman.orchestrator.turn import TurnEngine, TurnResult
from helmsman.session import ConversationHistory

logger = logging.getLogger(__name__)


class Agent:
    """Facade over a session's history, turn engine and autoplay.

    Usage::

        agent = Agent(TurnEngine(backend, gateway), ConversationHistory(persist=save))
        result = agent.send("Check my ship status")
        agent.start_autoplay("Keep mining")
    """

    def __init__(
        self,
        engine: TurnEngine,
        history: ConversationHistory,
        *,
        callbacks: TurnCallbacks | None = None,
        autoplay_display: object | None = None,
        autoplay_interval: float = DEFAULT_AUTOPLAY_INTERVAL,
        autoplay_max_failures: int = DEFAULT_AUTOPLAY_MAX_FAILURES,
    ) -> None:
        self._engine = engine
        self._history = history
        self._display = callbacks or TurnCallbacks()
        self._turn_lock = threading.Lock()

        # Display hooks come from any object with on_started/on_stopped/on_error.
        hooks = AutoplayCallbacks(
            on_turn=self._autoplay_turn,
            on_started=getattr(autoplay_display, "on_started", None),
            on_stopped=getattr(autoplay_display, "on_stopped", None),
            on_error=getattr(autoplay_display, "on_error", None),
        )
        self._autoplay = AutoplayCoordinator(
            hooks,
            interval=autoplay_interval,
            max_consecutive_failures=autoplay_max_failures,
        )

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def engine(self) -> TurnEngine:
        return self._engine

    @property
    def autoplay(self) -> AutoplayCoordinator:
        return self._autoplay

    def send(self, text: str, *, cancel: threading.Event | None = None) -> TurnResult:
        """Append a user message and run a turn for it.

        Blocks while another turn of this agent is in flight.

        Raises:
            HelmsmanError: Whatever aborted the turn (already reported
                through ``on_error``).
        """
        with self._turn_lock:
            self._record(Message.user(text))
            callbacks = TurnCallbacks(
                on_message=self._record,
                on_tool_call_start=self._display.on_tool_call_start,
                on_reasoning=self._display.on_reasoning,
                on_error=self._display.on_error,
                on_warning=self._display.on_warning,
            )
            return self._engine.run(self._history.snapshot(), callbacks=callbacks, cancel=cancel)

    def start_autoplay(self, message: str) -> None:
        self._autoplay.start(message)

    def stop_autoplay(self) -> None:
        self._autoplay.stop()

    def autoplay_status(self) -> AutoplayStatus:
        return self._autoplay.status()

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop autoplay if it is running and wait briefly for its thread."""
        if self._autoplay.state is AutoplayState.RUNNING:
            self._autoplay.stop()
        if not self._autoplay.join(timeout):
            logger.warning("Autoplay thread still busy after %.1fs", timeout or 0.0)

    def _record(self, message: Message) -> None:
        self._history.append(message)
        self._display.message(message)

    def _autoplay_turn(self, message: str) -> None:
        self.send(message)
