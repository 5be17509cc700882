"""History compression for long-running game conversations.

Keeps the most recent turns verbatim and shrinks older tool results by
category:

- AUTH tools (login/register/logout) are never altered.
- STATE query tools are replaced by a fixed marker; a fresher reading is
  always one call away.
- ACTION tools are kept unless oversized, in which case they are
  truncated.

Compression is driven only by message position and tool classification,
so compressing an already-compressed history changes nothing.
"""

from __future__ import annotations

import copy
import dataclasses
import enum
import json
import logging
from collections.abc import Sequence

from helmsman.models.messages import Message

logger = logging.getLogger(__name__)

COMPRESSED_MARKER = "[compressed - old state data]"
TRUNCATION_MARKER = "... [truncated]"

DEFAULT_ACTION_THRESHOLD = 500
DEFAULT_TRUNCATE_HEAD = 200

AUTH_TOOLS: frozenset[str] = frozenset({"login", "register", "logout"})

STATE_TOOLS: frozenset[str] = frozenset({
    "get_status",
    "get_ship",
    "get_system",
    "get_sector",
    "get_galaxy",
    "get_map",
    "get_players",
    "get_leaderboard",
    "get_market",
    "get_cargo",
    "captains_log_list",
})


class ToolCategory(str, enum.Enum):
    """Compression category of a tool."""

    AUTH = "auth"
    STATE = "state"
    ACTION = "action"


def classify_tool(name: str | None) -> ToolCategory:
    """Classify a tool name (case-insensitive). Unknown names are ACTION."""
    key = (name or "").lower()
    if key in AUTH_TOOLS:
        return ToolCategory.AUTH
    if key in STATE_TOOLS:
        return ToolCategory.STATE
    return ToolCategory.ACTION


def find_tool_name(messages: Sequence[Message], index: int) -> str | None:
    """Name of the tool whose result sits at ``messages[index]``.

    Searches backwards for the nearest assistant message carrying a tool
    call with the matching id.
    """
    msg = messages[index]
    if msg.role != "tool":
        return None
    for i in range(index - 1, -1, -1):
        candidate = messages[i]
        if candidate.role != "assistant":
            continue
        for tc in candidate.tool_calls:
            if tc.id == msg.tool_call_id:
                return tc.name
    return None


def _find_cutoff(messages: Sequence[Message], keep_full_turns: int) -> int:
    """Index of the user message opening the oldest kept turn, or -1."""
    seen = 0
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == "user":
            seen += 1
            if seen == keep_full_turns:
                return i
    return -1


def _truncate(content: str, head: int, tail: int) -> str:
    truncated = content[:head] + TRUNCATION_MARKER
    if tail > 0:
        truncated += content[-tail:]
    return truncated


def validate_truncation(action_threshold: int, truncate_head: int, truncate_tail: int) -> None:
    """Reject truncation settings whose output could exceed the threshold.

    A truncated result longer than ``action_threshold`` would be truncated
    again on the next pass, so compression would not be stable.
    """
    if truncate_head < 0 or truncate_tail < 0:
        raise ValueError("truncate_head and truncate_tail must be non-negative")
    if truncate_head + len(TRUNCATION_MARKER) + truncate_tail > action_threshold:
        raise ValueError(
            "Truncated results must fit within action_threshold "
            f"({truncate_head} + {len(TRUNCATION_MARKER)} + {truncate_tail} > {action_threshold})"
        )


def compress_history(
    messages: Sequence[Message],
    keep_full_turns: int,
    *,
    action_threshold: int = DEFAULT_ACTION_THRESHOLD,
    truncate_head: int = DEFAULT_TRUNCATE_HEAD,
    truncate_tail: int = 0,
) -> list[Message]:
    """Compress tool results older than the last ``keep_full_turns`` turns.

    Turns are counted by user messages. Messages from the start of the
    ``keep_full_turns``-th turn from the end onward are returned verbatim,
    as are user, assistant and system messages before it.

    Args:
        messages: Conversation history, oldest first. Never mutated.
        keep_full_turns: Number of most recent turns kept untouched.
        action_threshold: Action results longer than this are truncated.
        truncate_head: Characters kept from the start of a truncated result.
        truncate_tail: Characters kept from the end of a truncated result,
            appended after the truncation marker. 0 keeps the head only.

    Returns:
        A new list. Altered messages are new Message objects that share
        no mutable state with the originals.

    Raises:
        ValueError: If the truncation settings would produce results longer
            than ``action_threshold`` (compression would not be stable).
    """
    validate_truncation(action_threshold, truncate_head, truncate_tail)

    if not messages:
        return list(messages)

    turns = sum(1 for m in messages if m.role == "user")
    if turns <= keep_full_turns:
        return list(messages)

    cutoff = _find_cutoff(messages, keep_full_turns)
    if cutoff <= 0:
        return list(messages)

    result: list[Message] = []
    for i in range(cutoff):
        msg = messages[i]
        if msg.role != "tool":
            result.append(msg)
            continue

        category = classify_tool(find_tool_name(messages, i))
        if category is ToolCategory.AUTH:
            result.append(msg)
        elif category is ToolCategory.STATE:
            result.append(_with_content(msg, COMPRESSED_MARKER))
        elif len(msg.content) > action_threshold:
            result.append(_with_content(msg, _truncate(msg.content, truncate_head, truncate_tail)))
        else:
            result.append(msg)

    result.extend(messages[cutoff:])
    return result


def _with_content(msg: Message, content: str) -> Message:
    # Nested fields are deep-copied so the new message never aliases the original.
    return dataclasses.replace(
        msg,
        content=content,
        tool_calls=copy.deepcopy(msg.tool_calls),
    )


def estimate_token_count(messages: Sequence[Message]) -> int:
    """Rough token estimate (about 4 characters per token). Logging only."""
    total = 0
    for msg in messages:
        total += len(msg.content) // 4
        if msg.tool_calls:
            data = json.dumps([tc.to_dict() for tc in msg.tool_calls])
            total += len(data) // 4
        total += 4
    return total


def log_compression_stats(before: Sequence[Message], after: Sequence[Message]) -> None:
    """Log message counts and estimated token savings at DEBUG."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    before_tokens = estimate_token_count(before)
    after_tokens = estimate_token_count(after)
    logger.debug(
        "History compressed: %d messages, ~%d -> ~%d tokens (saved ~%d)",
        len(before),
        before_tokens,
        after_tokens,
        before_tokens - after_tokens,
    )
