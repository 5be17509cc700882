"""Tests for helmsman.session and the Agent facade.

Tests cover:
- ConversationHistory: snapshots, persistence hook, persistence failures
- System prompt loading and prepending
- SessionManager: create, resume, list, delete
- Agent: turn persistence, single-flight turns, autoplay integration
"""

from __future__ import annotations

import logging
import threading

import pytest

from helmsman.agent import Agent
from helmsman.exceptions import BackendError, ConfigurationError, SessionError
from helmsman.models.messages import Message, ToolDefinition, ToolResult
from helmsman.orchestrator import AutoplayState, TurnCallbacks, TurnEngine
from helmsman.session import (
    ConversationHistory,
    SessionManager,
    history_has_system_prompt,
    load_system_prompt,
    prepend_system_prompt,
)
from helmsman.toolkit import ToolGateway
from tests.conftest import RecordingUpstream, ScriptedBackend, reply, tool_reply


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class GatedBackend(ScriptedBackend):
    """ScriptedBackend whose first call blocks until released."""

    def __init__(self, replies):
        super().__init__(replies)
        self.entered = threading.Event()
        self.gate = threading.Event()

    def chat_with_tools(self, messages, tools):
        first = not self.entered.is_set()
        self.entered.set()
        if first:
            self.gate.wait(5)
        return super().chat_with_tools(messages, tools)


def make_agent(backend, history=None, **kwargs) -> Agent:
    gateway = ToolGateway(RecordingUpstream(tools=[ToolDefinition("get_status")]))
    gateway.refresh_tools()
    return Agent(
        TurnEngine(backend, gateway),
        history if history is not None else ConversationHistory(),
        **kwargs,
    )


# ===========================================================================
# ConversationHistory
# ===========================================================================


class TestConversationHistory:
    def test_snapshot_is_a_copy(self):
        history = ConversationHistory([Message.user("a")])
        snap = history.snapshot()
        snap.append(Message.user("b"))
        assert len(history) == 1

    def test_append_persists_in_order(self):
        saved = []
        history = ConversationHistory(persist=saved.append)
        history.extend([Message.user("a"), Message.assistant("b")])
        assert [m.content for m in saved] == ["a", "b"]
        assert len(history) == 2

    def test_persist_failure_keeps_message(self, caplog):
        caplog.set_level(logging.WARNING, logger="helmsman")

        def broken(message):
            raise RuntimeError("disk full")

        history = ConversationHistory(persist=broken)
        history.append(Message.user("hello"))

        assert len(history) == 1
        assert "Failed to persist user message: disk full" in caplog.text


# ===========================================================================
# System prompts
# ===========================================================================


class TestSystemPrompt:
    def test_load_markdown(self, tmp_path):
        path = tmp_path / "pilot.md"
        path.write_text("  You are a pilot.\n\n", encoding="utf-8")
        assert load_system_prompt(path) == "You are a pilot."

    def test_markdown_suffix_variants(self, tmp_path):
        path = tmp_path / "pilot.MARKDOWN"
        path.write_text("x", encoding="utf-8")
        assert load_system_prompt(str(path)) == "x"

    def test_wrong_suffix(self, tmp_path):
        path = tmp_path / "pilot.txt"
        path.write_text("x", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="markdown"):
            load_system_prompt(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_system_prompt(tmp_path / "missing.md")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.md"
        path.write_text("   \n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="empty"):
            load_system_prompt(path)

    def test_prepend_and_detect(self):
        history = [Message.user("hi")]
        combined = prepend_system_prompt(history, "Be brief.")
        assert combined[0].role == "system"
        assert combined[1:] == history
        assert history_has_system_prompt(combined, "Be brief.")
        assert not history_has_system_prompt(history, "Be brief.")


# ===========================================================================
# SessionManager
# ===========================================================================


class TestSessionManager:
    def test_new_named_session(self, store):
        init = SessionManager(store).initialize("miner", "openai", "m")
        assert init.info == "New session: miner"
        assert init.resumed is False
        assert store.get_session_by_name("miner").id == init.session_id

    def test_resume_named_session(self, store, session_id):
        init = SessionManager(store).initialize("test-session", "openai", "m")
        assert init.session_id == session_id
        assert init.resumed is True
        assert init.info == "Resumed session: test-session"

    def test_anonymous_session(self, store):
        init = SessionManager(store).initialize(None, "openai", "m")
        assert init.info == f"Session: {init.session_id[:8]}"

    def test_history_round_trip(self, store, session_id):
        manager = SessionManager(store)
        manager.save_message(session_id, Message.user("hi"))
        assert [m.content for m in manager.load_history(session_id)] == ["hi"]

    def test_save_message_failure_reraised(self, store, caplog):
        caplog.set_level(logging.WARNING, logger="helmsman")
        with pytest.raises(SessionError):
            SessionManager(store).save_message("missing", Message.user("hi"))
        assert "Failed to save message to database" in caplog.text

    def test_list_and_delete(self, store, session_id):
        manager = SessionManager(store)
        assert [s.name for s in manager.list()] == ["test-session"]

        manager.delete_by_name("test-session")
        assert manager.get_by_name("test-session") is None
        with pytest.raises(SessionError, match="Session 'test-session' not found"):
            manager.delete_by_name("test-session")


# ===========================================================================
# Agent
# ===========================================================================


class TestAgent:
    def test_turn_messages_persisted_in_order(self, store, session_id):
        manager = SessionManager(store)
        history = ConversationHistory(persist=lambda m: manager.save_message(session_id, m))
        backend = ScriptedBackend([tool_reply(("get_status", {}, "c1")), reply("All good.")])
        agent = make_agent(backend, history)

        result = agent.send("status?")

        assert result.final_message.content == "All good."
        stored = store.load_messages(session_id)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "status?"),
            ("assistant", ""),
            ("tool", "get_status ok"),
            ("assistant", "All good."),
        ]
        assert stored == history.snapshot()

    def test_resumed_history_sent_to_model(self):
        history = ConversationHistory([Message.system("Be brief."), Message.user("earlier")])
        backend = ScriptedBackend([reply()])
        make_agent(backend, history).send("now")
        assert [m.content for m in backend.calls[0]["messages"]] == ["Be brief.", "earlier", "now"]

    def test_display_callbacks_receive_messages(self):
        shown = []
        agent = make_agent(
            ScriptedBackend([reply("hi")]), callbacks=TurnCallbacks(on_message=shown.append)
        )
        agent.send("hello")
        assert [m.content for m in shown] == ["hello", "hi"]

    def test_failed_turn_keeps_user_message(self):
        errors = []
        agent = make_agent(
            ScriptedBackend([RuntimeError("down")]),
            callbacks=TurnCallbacks(on_error=errors.append),
        )
        with pytest.raises(BackendError):
            agent.send("hello")
        assert [m.content for m in agent.history.snapshot()] == ["hello"]
        assert len(errors) == 1

    def test_turns_are_single_flight(self):
        backend = GatedBackend([reply("first done"), reply("second done")])
        agent = make_agent(backend)

        t1 = threading.Thread(target=agent.send, args=("first",))
        t1.start()
        assert backend.entered.wait(5)

        t2 = threading.Thread(target=agent.send, args=("second",))
        t2.start()
        t2.join(0.2)
        assert t2.is_alive()
        assert [m.content for m in agent.history.snapshot()] == ["first"]

        backend.gate.set()
        t1.join(5)
        t2.join(5)
        assert [m.content for m in agent.history.snapshot()] == [
            "first",
            "first done",
            "second",
            "second done",
        ]

    def test_autoplay_turn_recorded(self):
        backend = GatedBackend([reply("mined")])
        agent = make_agent(backend, autoplay_interval=60)

        agent.start_autoplay("Keep mining")
        assert backend.entered.wait(5)
        assert agent.autoplay_status().enabled is True

        agent.stop_autoplay()
        backend.gate.set()
        assert agent.autoplay.join(5)
        assert [m.content for m in agent.history.snapshot()] == ["Keep mining", "mined"]

    def test_autoplay_display_hooks(self):
        class Display:
            def __init__(self):
                self.events = []

            def on_started(self, message, interval):
                self.events.append(("started", message))

            def on_stopped(self):
                self.events.append(("stopped",))

        display = Display()
        agent = make_agent(ScriptedBackend([reply()]), autoplay_display=display, autoplay_interval=60)
        agent.start_autoplay("go")
        agent.close()

        assert display.events == [("started", "go"), ("stopped",)]
        assert agent.autoplay.state is AutoplayState.IDLE

    def test_autoplay_failures_trip_breaker(self):
        errors = []

        class Display:
            def on_error(self, exc):
                errors.append(exc)

        agent = make_agent(
            ScriptedBackend([RuntimeError("down")]),
            autoplay_display=Display(),
            autoplay_interval=0,
            autoplay_max_failures=2,
        )
        agent.start_autoplay("go")
        assert agent.autoplay.join(5)

        assert isinstance(errors[0], BackendError)
        assert "consecutive failed turns" in str(errors[-1])
        assert agent.autoplay.state is AutoplayState.IDLE

    def test_close_without_autoplay(self):
        make_agent(ScriptedBackend([reply()])).close()

    def test_local_tool_error_reaches_model(self):
        backend = ScriptedBackend([tool_reply(("get_credentials", {}, "c1")), reply()])
        agent = make_agent(backend)
        agent.engine._gateway.register_tool(
            ToolDefinition("get_credentials"), lambda args: ToolResult.error("locked")
        )
        agent.send("who am I?")
        assert backend.calls[1]["messages"][-1].content == "locked"
