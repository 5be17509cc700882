"""Conversation data models.

Frozen dataclasses for messages, tool calls, tool definitions and tool
results. Tool parameter schemas and call arguments are opaque dicts: they
come from an external server at runtime and are passed through untouched.
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Role = Literal["user", "assistant", "tool", "system"]

ROLES: frozenset[str] = frozenset({"user", "assistant", "tool", "system"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Arguments are always a parsed dict; OpenAI's JSON string is parsed at
    ingestion time.
    """

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    @classmethod
    def from_openai(cls, tc: dict) -> ToolCall:
        """Parse from OpenAI/compatible format."""
        raw_args = tc["function"].get("arguments") or "{}"
        try:
            arguments = _json.loads(raw_args) if isinstance(raw_args, str) else raw_args
        except (_json.JSONDecodeError, TypeError):
            arguments = {"_raw": raw_args}
        if not isinstance(arguments, dict):
            arguments = {"_raw": arguments}
        return cls(id=tc["id"], name=tc["function"]["name"], arguments=arguments)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ToolCall:
        """Reconstruct from a stored dict."""
        return cls(id=d["id"], name=d["name"], arguments=d.get("arguments") or {})

    def to_openai(self) -> dict:
        """Serialize to OpenAI wire format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": _json.dumps(self.arguments),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Attributes:
        role: One of ``user``, ``assistant``, ``tool``, ``system``.
        content: Text content.
        tool_calls: Tool calls requested by the model (assistant only).
        tool_call_id: Id of the call this message answers (tool only).
        reasoning: Optional model reasoning text (assistant only).
        created_at: Creation timestamp (UTC).
    """

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    reasoning: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.tool_calls and self.role != "assistant":
            raise ValueError("Only assistant messages may carry tool calls")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages require a tool_call_id")

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: tuple[ToolCall, ...] | list[ToolCall] = (),
        reasoning: str | None = None,
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls),
            reasoning=reasoning or None,
        )

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "role": self.role,
            "content": self.content,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "tool_call_id": self.tool_call_id,
            "reasoning": self.reasoning,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Message:
        created = d.get("created_at")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return cls(
            role=d["role"],
            content=d.get("content") or "",
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in d.get("tool_calls") or ()),
            tool_call_id=d.get("tool_call_id"),
            reasoning=d.get("reasoning"),
            created_at=created or _utcnow(),
        )


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the model may call.

    Attributes:
        name: Tool name, unique within one merged tool set.
        description: Human-readable description.
        parameters: JSON Schema dict describing the arguments (opaque).
    """

    name: str
    description: str = ""
    parameters: dict = field(default_factory=lambda: {"type": "object", "properties": {}})

    @classmethod
    def from_mcp(cls, d: dict[str, Any]) -> ToolDefinition:
        """Parse an entry of a ``tools/list`` result."""
        return cls(
            name=d["name"],
            description=d.get("description") or "",
            parameters=d.get("inputSchema") or {"type": "object", "properties": {}},
        )

    def to_openai(self) -> dict:
        """Convert to OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ContentBlock:
    """One block of tool output, tagged with its kind (e.g. ``text``)."""

    type: str = "text"
    text: str = ""
    data: dict = field(default_factory=dict)

    @classmethod
    def from_mcp(cls, d: dict[str, Any]) -> ContentBlock:
        extra = {k: v for k, v in d.items() if k not in ("type", "text")}
        return cls(type=d.get("type", "text"), text=d.get("text") or "", data=extra)


@dataclass(frozen=True)
class ToolResult:
    """Structured result of a tool invocation.

    Attributes:
        content: Ordered content blocks.
        is_error: True when the tool reported a failure.
    """

    content: tuple[ContentBlock, ...] = ()
    is_error: bool = False

    @property
    def text(self) -> str:
        """Concatenated text of all ``text`` blocks."""
        return "".join(block.text for block in self.content if block.type == "text")

    @classmethod
    def from_text(cls, text: str, *, is_error: bool = False) -> ToolResult:
        return cls(content=(ContentBlock(type="text", text=text),), is_error=is_error)

    @classmethod
    def error(cls, text: str) -> ToolResult:
        return cls.from_text(text, is_error=True)

    @classmethod
    def from_mcp(cls, d: dict[str, Any]) -> ToolResult:
        """Parse a ``tools/call`` result document."""
        blocks = tuple(ContentBlock.from_mcp(b) for b in d.get("content") or ())
        return cls(content=blocks, is_error=bool(d.get("isError", False)))
