"""Helmsman CLI -- terminal interface for the game agent.

This module is NEVER imported from helmsman/__init__.py.
It is only loaded via the ``helmsman`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from helmsman.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from helmsman.session import SessionManager

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool = False, log_file: str | None = None) -> None:
    """Attach a handler to the ``helmsman`` logger.

    Logs go to ``log_file`` when given, otherwise to stderr through Rich.
    """
    level = logging.DEBUG if debug else logging.WARNING
    package_logger = logging.getLogger("helmsman")
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
        existing.close()

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setLevel(level)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


@click.group()
@click.option(
    "--db",
    default=None,
    envvar="HELMSMAN_DB_PATH",
    help="Path to the session database (default: .helmsman.db).",
)
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging.")
@click.option(
    "--log-file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Write logs to this file instead of stderr.",
)
@click.pass_context
def cli(ctx: click.Context, db: str | None, debug: bool, log_file: str | None) -> None:
    """Helmsman: a language model playing a tool-driven game."""
    load_dotenv()
    configure_logging(debug, log_file)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db


@contextmanager
def _session_manager(ctx: click.Context) -> Iterator[tuple[SessionManager, Console]]:
    """Open the session store, yield (manager, console), and clean up.

    Formats exceptions as CLI errors.
    """
    from helmsman.models.config import HelmsmanConfig
    from helmsman.session import SessionManager
    from helmsman.storage.store import SessionStore

    console = get_console()
    try:
        config = HelmsmanConfig.from_env(db_path=ctx.obj.get("db_path"))
        store = SessionStore.open(config.db_path)
        try:
            yield SessionManager(store), console
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from helmsman.cli.commands.chat import chat  # noqa: E402
from helmsman.cli.commands.sessions import sessions  # noqa: E402

cli.add_command(chat)
cli.add_command(sessions)
