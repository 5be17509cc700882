"""Hypothesis strategies for Helmsman conversation histories.

Generates well-formed histories: every tool result answers a tool call
of an earlier assistant message, turns start with a user message.
"""

from datetime import datetime, timezone

from hypothesis import strategies as st

from helmsman.models.messages import Message, ToolCall

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

tool_names = st.sampled_from([
    "login",
    "register",
    "LOGOUT",
    "get_status",
    "Get_Ship",
    "get_market",
    "captains_log_list",
    "mine",
    "travel",
    "sell",
    "save_credentials",
])

tool_output = st.one_of(
    st.text(max_size=80),
    st.text(min_size=400, max_size=1200, alphabet="abcdefghij {}:,\"0123456789"),
)


@st.composite
def turns(draw, index: int) -> list[Message]:
    """One turn: user message, zero or more tool rounds, final reply."""
    messages = [Message(role="user", content=f"turn {index}", created_at=_EPOCH)]
    rounds = draw(st.integers(min_value=0, max_value=3))
    for r in range(rounds):
        names = draw(st.lists(tool_names, min_size=1, max_size=3))
        calls = tuple(
            ToolCall(id=f"call_{index}_{r}_{i}", name=name, arguments={"n": i})
            for i, name in enumerate(names)
        )
        messages.append(Message(role="assistant", tool_calls=calls, created_at=_EPOCH))
        for call in calls:
            messages.append(
                Message(
                    role="tool",
                    content=draw(tool_output),
                    tool_call_id=call.id,
                    created_at=_EPOCH,
                )
            )
    messages.append(Message(role="assistant", content=f"reply {index}", created_at=_EPOCH))
    return messages


@st.composite
def histories(draw, max_turns: int = 6) -> list[Message]:
    """A full history, optionally led by a system prompt."""
    history: list[Message] = []
    if draw(st.booleans()):
        history.append(Message(role="system", content="You are a pilot.", created_at=_EPOCH))
    count = draw(st.integers(min_value=0, max_value=max_turns))
    for i in range(count):
        history.extend(draw(turns(i)))
    return history
