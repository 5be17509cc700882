"""helmsman sessions -- list and delete stored sessions."""

from __future__ import annotations

import click

from helmsman.cli.formatting import format_sessions


@click.group()
def sessions() -> None:
    """Manage stored sessions."""


@sessions.command("list")
@click.option("--limit", "-n", default=20, show_default=True, help="Maximum sessions to show.")
@click.pass_context
def list_sessions(ctx: click.Context, limit: int) -> None:
    """List recent sessions, most recently active first."""
    from helmsman.cli import _session_manager

    with _session_manager(ctx) as (manager, console):
        format_sessions(manager.list(limit), console)


@sessions.command("delete")
@click.argument("name")
@click.pass_context
def delete_session(ctx: click.Context, name: str) -> None:
    """Delete the session called NAME and its history."""
    from helmsman.cli import _session_manager

    with _session_manager(ctx) as (manager, console):
        manager.delete_by_name(name)
        console.print(f"Deleted session [cyan]{name}[/cyan]")
