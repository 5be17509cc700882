"""Model backend protocol.

The turn engine only needs one operation: send the (compressed) history
plus tool definitions, get back text, optional reasoning and tool calls.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from helmsman.models.messages import Message, ToolCall, ToolDefinition


@dataclass(frozen=True)
class ChatResponse:
    """One model reply.

    Attributes:
        content: Assistant text (may be empty when only tools are called).
        reasoning: Model reasoning/thinking text, if the provider exposes it.
        tool_calls: Requested tool calls, in the order they must run.
    """

    content: str = ""
    reasoning: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()


@runtime_checkable
class ChatBackend(Protocol):
    """Protocol for pluggable model backends.

    Any object with a matching ``chat_with_tools()`` works. Implementations
    should raise BackendError (or a subclass) on failure.
    """

    def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ChatResponse:
        """Send messages and tool definitions, return the model's reply."""
        ...
