"""Shared test fixtures for Helmsman.

Provides an in-memory session store, a scripted model backend and a
recording tool upstream. No test touches the network.
"""

from __future__ import annotations

import threading

import pytest

from helmsman.llm.protocols import ChatResponse
from helmsman.models.messages import ToolCall, ToolDefinition, ToolResult
from helmsman.storage.store import SessionStore


@pytest.fixture
def store():
    """In-memory SessionStore with all tables created."""
    s = SessionStore.open(":memory:")
    yield s
    s.close()


@pytest.fixture
def session_id(store: SessionStore) -> str:
    return store.create_session("openai", "gpt-4o-mini", name="test-session").id


# ------------------------------------------------------------------
# Shared test helpers
# ------------------------------------------------------------------


def reply(text: str = "Done.", reasoning: str | None = None) -> ChatResponse:
    """Model reply with no tool calls."""
    return ChatResponse(content=text, reasoning=reasoning)


def tool_reply(*calls: tuple[str, dict, str], text: str = "") -> ChatResponse:
    """Model reply requesting tools. Each call is (name, arguments, call_id)."""
    return ChatResponse(
        content=text,
        tool_calls=tuple(ToolCall(id=cid, name=name, arguments=args) for name, args, cid in calls),
    )


class ScriptedBackend:
    """ChatBackend returning canned replies in sequence.

    Records a copy of the messages and tool names of every call. The last
    reply repeats once the script runs out.
    """

    def __init__(self, replies: list[ChatResponse]):
        self._replies = list(replies)
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def chat_with_tools(self, messages, tools) -> ChatResponse:
        with self._lock:
            self.calls.append({"messages": list(messages), "tools": [t.name for t in tools]})
            idx = min(len(self.calls) - 1, len(self._replies) - 1)
            result = self._replies[idx]
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def call_count(self) -> int:
        return len(self.calls)


class RecordingUpstream:
    """Upstream stand-in that records tool calls and answers from a table."""

    def __init__(self, results: dict[str, ToolResult | Exception] | None = None, tools=None):
        self.results = results or {}
        self.tools = tools or [ToolDefinition(name) for name in self.results]
        self.calls: list[tuple[str, dict]] = []
        self.notifications: list[str] = []
        self.initialized = False
        self.closed = False

    def initialize(self, client_info=None, *, cancel=None) -> dict:
        self.initialized = True
        return {"protocolVersion": "2024-11-05", "serverInfo": {"name": "recording"}}

    def notify(self, method, params=None) -> None:
        self.notifications.append(method)

    def list_tools(self, *, cancel=None):
        return list(self.tools)

    def call_tool(self, name, arguments=None, *, cancel=None) -> ToolResult:
        self.calls.append((name, dict(arguments or {})))
        result = self.results.get(name, ToolResult.from_text(f"{name} ok"))
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True
