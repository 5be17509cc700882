"""Tests for the Helmsman CLI.

Uses click's CliRunner against a temporary database file. The model
backend is injected through ``obj["backend_factory"]`` and the upstream is
the built-in offline stub, so nothing touches the network.
"""

from __future__ import annotations

import os

import pytest
from click.testing import CliRunner

from helmsman.cli import cli
from helmsman.storage import SessionStore
from tests.conftest import ScriptedBackend, reply, tool_reply


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("HELMSMAN_"):
            monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def db(tmp_path) -> str:
    return str(tmp_path / "helmsman.db")


def run_chat(db: str, backend, *args: str, input: str = "/quit\n", configs=None):
    """Invoke ``helmsman --db DB chat --offline ARGS`` with a scripted backend."""

    def factory(config):
        if configs is not None:
            configs.append(config)
        return backend

    runner = CliRunner()
    return runner.invoke(
        cli,
        ["--db", db, "chat", "--offline", *args],
        input=input,
        obj={"backend_factory": factory},
    )


def stored_messages(db: str, name: str):
    with SessionStore.open(db) as store:
        info = store.get_session_by_name(name)
        assert info is not None
        return store.load_messages(info.id)


# ===========================================================================
# chat
# ===========================================================================


class TestChat:
    def test_single_turn(self, db):
        backend = ScriptedBackend([reply("Ahoy, pilot!")])
        result = run_chat(db, backend, "-s", "miner", input="hello\n/quit\n")

        assert result.exit_code == 0, result.output
        assert "New session: miner" in result.output
        assert "Ahoy, pilot!" in result.output
        assert "Goodbye!" in result.output
        assert [m.content for m in stored_messages(db, "miner")] == ["hello", "Ahoy, pilot!"]

    def test_welcome_counts_stub_and_local_tools(self, db):
        backend = ScriptedBackend([reply()])
        result = run_chat(db, backend)
        assert "Tools: 7 available" in result.output

    def test_tool_round_against_stub(self, db):
        backend = ScriptedBackend([tool_reply(("get_status", {}, "c1")), reply("Credits: 1000")])
        result = run_chat(db, backend, "-s", "miner", input="status\nexit\n")

        assert result.exit_code == 0, result.output
        assert "-> get_status" in result.output
        assert "Credits: 1000" in result.output
        tool_msg = stored_messages(db, "miner")[2]
        assert tool_msg.role == "tool"
        assert '"current_tick": 42' in tool_msg.content

    def test_model_sees_local_and_stub_tools(self, db):
        backend = ScriptedBackend([reply()])
        run_chat(db, backend, input="hi\n/quit\n")
        tools = backend.calls[0]["tools"]
        assert "get_status" in tools
        assert {"save_credentials", "get_credentials"} <= set(tools)

    def test_resume_named_session(self, db):
        run_chat(db, ScriptedBackend([reply("first")]), "-s", "miner", input="one\n/quit\n")

        backend = ScriptedBackend([reply("second")])
        result = run_chat(db, backend, "-s", "miner", input="two\n/quit\n")

        assert "Resumed session: miner" in result.output
        seen = [m.content for m in backend.calls[0]["messages"]]
        assert seen == ["one", "first", "two"]

    def test_system_prompt_prepended_once(self, db, tmp_path):
        prompt = tmp_path / "pilot.md"
        prompt.write_text("You are a cautious pilot.", encoding="utf-8")

        first = ScriptedBackend([reply()])
        run_chat(db, first, "-s", "p", "--system-file", str(prompt), input="hi\n/quit\n")
        second = ScriptedBackend([reply()])
        run_chat(db, second, "-s", "p", "--system-file", str(prompt), input="again\n/quit\n")

        for backend in (first, second):
            messages = backend.calls[0]["messages"]
            assert messages[0].role == "system"
            assert messages[0].content == "You are a cautious pilot."
            assert sum(1 for m in messages if m.role == "system") == 1
        assert all(m.role != "system" for m in stored_messages(db, "p"))

    def test_non_markdown_system_file(self, db, tmp_path):
        prompt = tmp_path / "pilot.txt"
        prompt.write_text("x", encoding="utf-8")
        result = run_chat(db, ScriptedBackend([reply()]), "--system-file", str(prompt))
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_backend_failure_reported_and_repl_continues(self, db):
        backend = ScriptedBackend([RuntimeError("model down"), reply("back")])
        result = run_chat(db, backend, input="one\ntwo\n/quit\n")

        assert result.exit_code == 0, result.output
        assert "model down" in result.output
        assert "back" in result.output

    def test_model_option_reaches_config(self, db):
        configs = []
        run_chat(db, ScriptedBackend([reply()]), "--model", "test-model", configs=configs)
        assert configs[0].model == "test-model"
        assert configs[0].db_path == db

    def test_eof_exits_cleanly(self, db):
        result = run_chat(db, ScriptedBackend([reply()]), input="")
        assert result.exit_code == 0

    def test_upstream_unavailable_continues(self, db, clean_env):
        clean_env.setenv("HELMSMAN_RETRY_DELAYS", "0")
        clean_env.setenv("HELMSMAN_REQUEST_TIMEOUT", "2")
        backend = ScriptedBackend([reply("local only")])
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["--db", db, "chat", "--upstream", "http://127.0.0.1:9/mcp"],
            input="hi\n/quit\n",
            obj={"backend_factory": lambda config: backend},
        )

        assert result.exit_code == 0, result.output
        assert "Upstream unavailable" in result.output
        assert "local only" in result.output
        assert backend.calls[0]["tools"] == ["save_credentials", "get_credentials"]


class TestChatAutoplayCommands:
    def test_status_when_off(self, db):
        result = run_chat(db, ScriptedBackend([reply()]), input="/autoplay\n/quit\n")
        assert "Autoplay is off" in result.output

    def test_stop_when_off(self, db):
        result = run_chat(db, ScriptedBackend([reply()]), input="/autoplay stop\n/quit\n")
        assert "Error: Autoplay not active" in result.output
        assert result.exit_code == 0

    def test_start_and_stop(self, db):
        result = run_chat(
            db,
            ScriptedBackend([reply("mining")]),
            input="/autoplay Keep mining\n/autoplay stop\n/quit\n",
        )
        assert result.exit_code == 0, result.output
        assert "Autoplay started" in result.output
        assert "Autoplay stopped" in result.output

    def test_autoplay_option_stopped_on_exit(self, db):
        result = run_chat(db, ScriptedBackend([reply()]), "--autoplay", "Explore")
        assert result.exit_code == 0, result.output
        assert "Autoplay started" in result.output
        assert "Autoplay stopped" in result.output


# ===========================================================================
# sessions
# ===========================================================================


class TestSessionsCommands:
    def test_list_empty(self, db):
        result = CliRunner().invoke(cli, ["--db", db, "sessions", "list"])
        assert result.exit_code == 0
        assert "No sessions." in result.output

    def test_list_shows_sessions(self, db):
        run_chat(db, ScriptedBackend([reply()]), "-s", "alpha", input="hi\n/quit\n")
        result = CliRunner().invoke(cli, ["--db", db, "sessions", "list"])
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "openai/gpt-4o-mini" in result.output

    def test_delete(self, db):
        run_chat(db, ScriptedBackend([reply()]), "-s", "alpha")
        result = CliRunner().invoke(cli, ["--db", db, "sessions", "delete", "alpha"])

        assert result.exit_code == 0
        assert "Deleted session alpha" in result.output
        with SessionStore.open(db) as store:
            assert store.get_session_by_name("alpha") is None

    def test_delete_missing(self, db):
        result = CliRunner().invoke(cli, ["--db", db, "sessions", "delete", "ghost"])
        assert result.exit_code == 1
        assert "Session 'ghost' not found" in result.output

    def test_db_from_env(self, db, clean_env):
        clean_env.setenv("HELMSMAN_DB_PATH", db)
        run_chat(db, ScriptedBackend([reply()]), "-s", "envy")
        result = CliRunner().invoke(cli, ["sessions", "list"])
        assert "envy" in result.output
