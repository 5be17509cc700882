"""helmsman chat -- interactive conversation with the game agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import click
from rich.markup import escape

from helmsman.cli.formatting import (
    RichAutoplayDisplay,
    RichTurnDisplay,
    format_error,
    format_welcome,
    get_console,
)
from helmsman.exceptions import HelmsmanError, TransportError

if TYPE_CHECKING:
    from rich.console import Console

    from helmsman.agent import Agent
    from helmsman.llm.protocols import ChatBackend
    from helmsman.models.config import HelmsmanConfig

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"

QUIT_COMMANDS = frozenset({"/quit", "/exit", "quit", "exit"})


def _default_backend(config: HelmsmanConfig) -> ChatBackend:
    from helmsman.llm.client import OpenAIChatBackend

    return OpenAIChatBackend(
        api_key=config.api_key,
        base_url=config.base_url,
        model=config.model,
        temperature=config.temperature,
    )


@click.command()
@click.option("--session", "-s", "session_name", default=None, help="Resume or create a named session.")
@click.option(
    "--system-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Markdown file with the system prompt.",
)
@click.option("--autoplay", "autoplay_message", default=None, help="Start autoplay with this message.")
@click.option("--offline", is_flag=True, default=False, help="Use the built-in stub upstream.")
@click.option("--upstream", default=None, help="Upstream tool server URL.")
@click.option("--model", default=None, help="Model name for the chat backend.")
@click.pass_context
def chat(
    ctx: click.Context,
    session_name: str | None,
    system_file: str | None,
    autoplay_message: str | None,
    offline: bool,
    upstream: str | None,
    model: str | None,
) -> None:
    """Chat with the agent. Type /autoplay MESSAGE to let it play, /quit to leave."""
    from helmsman.agent import Agent
    from helmsman.models.config import HelmsmanConfig
    from helmsman.orchestrator.config import TurnConfig
    from helmsman.orchestrator.turn import TurnEngine
    from helmsman.session import (
        ConversationHistory,
        SessionManager,
        history_has_system_prompt,
        load_system_prompt,
        prepend_system_prompt,
    )
    from helmsman.storage.store import SessionStore
    from helmsman.toolkit.credentials import register_credential_tools
    from helmsman.toolkit.gateway import ToolGateway
    from helmsman.transport.client import UpstreamClient
    from helmsman.transport.stub import StubUpstreamClient

    console = get_console()
    try:
        config = HelmsmanConfig.from_env(
            db_path=ctx.obj.get("db_path"),
            upstream_url=upstream,
            model=model,
            system_prompt_file=system_file,
        )
        system_prompt = (
            load_system_prompt(config.system_prompt_file) if config.system_prompt_file else None
        )
        backend_factory: Callable[[HelmsmanConfig], ChatBackend] = ctx.obj.get(
            "backend_factory", _default_backend
        )
        backend = backend_factory(config)
    except HelmsmanError as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    store = SessionStore.open(config.db_path)
    if offline:
        upstream_client = StubUpstreamClient()
    else:
        upstream_client = UpstreamClient(
            config.upstream_url,
            timeout=config.request_timeout,
            retry_delays=config.retry_delays,
        )
    gateway = ToolGateway(upstream_client)
    agent: Agent | None = None
    try:
        manager = SessionManager(store)
        init = manager.initialize(session_name, PROVIDER_NAME, config.model)
        register_credential_tools(gateway, store, init.session_id)
        logger.debug("Registered %d local tool(s)", gateway.local_tool_count)

        try:
            gateway.initialize()
        except TransportError as e:
            logger.warning("Upstream unavailable, continuing with local tools: %s", e)
            format_error(f"Upstream unavailable: {e}", console)

        messages = manager.load_history(init.session_id)
        if system_prompt and not history_has_system_prompt(messages, system_prompt):
            messages = prepend_system_prompt(messages, system_prompt)

        session_id = init.session_id
        history = ConversationHistory(
            messages, persist=lambda m: manager.save_message(session_id, m)
        )
        engine = TurnEngine(
            backend,
            gateway,
            TurnConfig(
                max_rounds=config.max_tool_rounds,
                keep_full_turns=config.history_keep_turns,
            ),
        )
        display = RichTurnDisplay(console, show_user=False)
        agent = Agent(
            engine,
            history,
            callbacks=display.callbacks(),
            autoplay_display=RichAutoplayDisplay(console),
            autoplay_interval=config.autoplay_interval,
            autoplay_max_failures=config.autoplay_max_failures,
        )

        format_welcome(config.model, len(gateway.list_tools()), init.info, console)
        if autoplay_message:
            agent.start_autoplay(autoplay_message)
        _repl(agent, console)
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
    finally:
        if agent is not None:
            agent.close()
        gateway.close()
        close = getattr(backend, "close", None)
        if close is not None:
            close()
        store.close()


def _repl(agent: Agent, console: Console) -> None:
    """Read user input until EOF or a quit command."""
    while True:
        try:
            line = console.input("[bold magenta]>[/bold magenta] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        text = line.strip()
        if not text:
            continue
        if text.lower() in QUIT_COMMANDS:
            console.print("[dim]Goodbye![/dim]")
            break
        if text.startswith("/autoplay"):
            _autoplay_command(agent, text[len("/autoplay"):].strip(), console)
            continue
        try:
            agent.send(text)
        except HelmsmanError:
            # Already shown through the on_error display hook.
            continue
        console.print()


def _autoplay_command(agent: Agent, argument: str, console: Console) -> None:
    """Handle ``/autoplay``, ``/autoplay stop`` and ``/autoplay MESSAGE``."""
    try:
        if not argument:
            status = agent.autoplay_status()
            if status.enabled:
                console.print(
                    f"Autoplay running every {status.interval:.0f}s: {escape(status.message)} "
                    f"[dim]({status.consecutive_failures} recent failure(s))[/dim]"
                )
            else:
                console.print("Autoplay is off. Usage: /autoplay MESSAGE | /autoplay stop")
        elif argument.lower() == "stop":
            agent.stop_autoplay()
        else:
            agent.start_autoplay(argument)
    except HelmsmanError as e:
        format_error(str(e), console)
