"""Turn engine: the model/tool round loop for one conversational turn.

Each round compresses the working history, asks the model for a reply,
and either finishes (no tool calls) or runs the requested tools in order
and appends their results. Every round compresses the same growing
working list, so the model always sees the results of its previous calls.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from helmsman.engine.compression import compress_history, log_compression_stats
from helmsman.exceptions import (
    BackendError,
    RoundBudgetExceededError,
    TransportCancelledError,
    TransportError,
    TurnCancelledError,
    TurnDeadlineExceededError,
    TurnError,
)
from helmsman.models.messages import Message, ToolCall
from helmsman.orchestrator.callbacks import TurnCallbacks
from helmsman.orchestrator.config import TurnConfig, TurnState

if TYPE_CHECKING:
    from helmsman.llm.protocols import ChatBackend, ChatResponse
    from helmsman.toolkit.gateway import ToolGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of a completed turn.

    Attributes:
        final_message: The tool-call-free assistant reply that ended the turn.
        new_messages: Every message the turn appended, in order.
        rounds: Number of model calls made.
        tool_calls: Number of tool calls executed.
    """

    final_message: Message
    new_messages: tuple[Message, ...]
    rounds: int
    tool_calls: int


class TurnEngine:
    """Drives one turn: repeated model calls plus tool dispatch rounds.

    The engine never touches the canonical history. It works on a private
    copy and reports each new message through ``callbacks.on_message``.

    Usage::

        engine = TurnEngine(backend, gateway, TurnConfig(max_rounds=20))
        result = engine.run(history_snapshot, callbacks=TurnCallbacks(on_message=store))
        print(result.final_message.content)
    """

    def __init__(
        self,
        backend: ChatBackend,
        gateway: ToolGateway,
        config: TurnConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._gateway = gateway
        self._config = config or TurnConfig()
        self._clock = clock
        self._state = TurnState.IDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> TurnState:
        """State of the current (or most recent) turn."""
        return self._state

    @property
    def config(self) -> TurnConfig:
        return self._config

    def run(
        self,
        history: Sequence[Message],
        *,
        callbacks: TurnCallbacks | None = None,
        cancel: threading.Event | None = None,
    ) -> TurnResult:
        """Run one turn over a snapshot of the conversation.

        Args:
            history: Conversation so far, ending with the new user message.
                Copied; never mutated.
            callbacks: Display hooks.
            cancel: Checked between rounds and passed to upstream tool calls.

        Returns:
            TurnResult with the final reply and every appended message.

        Raises:
            BackendError: If the model backend fails.
            RoundBudgetExceededError: If ``max_rounds`` model calls pass
                without a final answer.
            TurnCancelledError: If ``cancel`` is set between rounds.
            TurnDeadlineExceededError: If the configured deadline passes.
        """
        callbacks = callbacks or TurnCallbacks()
        working: list[Message] = list(history)
        start = len(working)
        started_at = self._clock()
        tool_call_count = 0

        try:
            for round_idx in range(self._config.max_rounds):
                self._check_between_rounds(round_idx, started_at, cancel)

                self._state = TurnState.CALLING_MODEL
                response = self._call_model(working)

                if response.reasoning:
                    callbacks.reasoning(response.reasoning)

                if not response.tool_calls:
                    final = Message.assistant(response.content, reasoning=response.reasoning)
                    working.append(final)
                    callbacks.message(final)
                    self._state = TurnState.DONE
                    return TurnResult(
                        final_message=final,
                        new_messages=tuple(working[start:]),
                        rounds=round_idx + 1,
                        tool_calls=tool_call_count,
                    )

                request = Message.assistant(
                    response.content,
                    tool_calls=response.tool_calls,
                    reasoning=response.reasoning,
                )
                working.append(request)
                callbacks.message(request)

                self._state = TurnState.AWAITING_TOOL_RESULTS
                callbacks.tool_call_start()
                for call in response.tool_calls:
                    result_msg = self._execute_tool_call(call, callbacks, cancel)
                    tool_call_count += 1
                    working.append(result_msg)
                    callbacks.message(result_msg)

            raise RoundBudgetExceededError(self._config.max_rounds)

        except (BackendError, TurnError) as exc:
            self._state = TurnState.FAILED
            logger.warning("Turn failed: %s", exc)
            callbacks.error(exc)
            raise
        except BaseException:
            self._state = TurnState.FAILED
            raise

    # ------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------

    def _check_between_rounds(
        self,
        round_idx: int,
        started_at: float,
        cancel: threading.Event | None,
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise TurnCancelledError(f"Turn cancelled after {round_idx} round(s)")
        deadline = self._config.deadline_seconds
        if deadline is not None and round_idx > 0:
            if self._clock() - started_at > deadline:
                raise TurnDeadlineExceededError(deadline, round_idx)

    def _call_model(self, working: list[Message]) -> ChatResponse:
        """Compress the working history and ask the model for a reply."""
        cfg = self._config
        compressed = compress_history(
            working,
            cfg.keep_full_turns,
            action_threshold=cfg.action_threshold,
            truncate_head=cfg.truncate_head,
            truncate_tail=cfg.truncate_tail,
        )
        if compressed != working:
            log_compression_stats(working, compressed)

        try:
            return self._backend.chat_with_tools(compressed, self._gateway.list_tools())
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(f"Model backend failed: {exc}") from exc

    def _execute_tool_call(
        self,
        call: ToolCall,
        callbacks: TurnCallbacks,
        cancel: threading.Event | None,
    ) -> Message:
        """Run one tool call and build its tool-role message.

        Transport failures become an error message so the model can react.
        A cancelled call ends the turn and leaves no tool message behind.
        """
        logger.debug("Calling tool %s (%s)", call.name, call.id)
        try:
            result = self._gateway.call_tool(call.name, call.arguments, cancel=cancel)
        except TransportCancelledError as exc:
            raise TurnCancelledError(f"Turn cancelled during tool {call.name}") from exc
        except TransportError as exc:
            logger.warning("Tool %s transport failure: %s", call.name, exc)
            callbacks.warning(f"Tool {call.name} failed: {exc}")
            return Message.tool(call.id, f"Error: {exc}")

        if result.is_error:
            logger.debug("Tool %s returned an error result: %.200s", call.name, result.text)
        return Message.tool(call.id, result.text)
