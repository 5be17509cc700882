"""Rich formatting helpers for the Helmsman CLI.

Provides the terminal display layer: turn and autoplay hooks that print
through a Rich console, plus session table rendering. Rich auto-detects
TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from helmsman.exceptions import AutoplayCircuitOpenError
from helmsman.orchestrator.callbacks import TurnCallbacks

if TYPE_CHECKING:
    from helmsman.models.messages import Message
    from helmsman.storage.store import SessionInfo

_REASONING_TAIL = 160


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)


def format_duration(delta: timedelta) -> str:
    """Human-readable age, e.g. ``just now``, ``5 minutes``, ``1 day``."""
    seconds = delta.total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        mins = int(seconds // 60)
        return "1 minute" if mins == 1 else f"{mins} minutes"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return "1 hour" if hours == 1 else f"{hours} hours"
    days = int(seconds // 86400)
    return "1 day" if days == 1 else f"{days} days"


def format_sessions(sessions: list[SessionInfo], console: Console) -> None:
    """Display stored sessions in a compact table."""
    if not sessions:
        console.print("[dim]No sessions.[/dim]")
        return

    now = datetime.now(timezone.utc)
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Name", style="cyan")
    table.add_column("ID", style="yellow", width=8)
    table.add_column("Model")
    table.add_column("Messages", justify="right", style="green")
    table.add_column("Last active", style="dim")

    for info in sessions:
        table.add_row(
            escape(info.name) if info.name else "[dim](unnamed)[/dim]",
            info.id[:8],
            escape(f"{info.provider}/{info.model}"),
            str(info.message_count),
            format_duration(now - info.last_active_at),
        )
    console.print(table)


def format_welcome(model: str, tool_count: int, session_info: str, console: Console) -> None:
    console.print("[bold magenta]Helmsman[/bold magenta] [dim]- game agent CLI[/dim]")
    console.print(f"[dim]Model: {escape(model)}[/dim]")
    console.print(f"[dim]Tools: {tool_count} available[/dim]")
    console.print(f"[dim]{escape(session_info)}[/dim]")
    console.print()


class RichTurnDisplay:
    """Prints turn activity: reasoning tail, tool indicators, replies.

    Output from the autoplay thread and the foreground thread is
    serialized through one lock so lines never interleave.
    """

    def __init__(self, console: Console, *, show_user: bool = False) -> None:
        self._console = console
        self._show_user = show_user
        self._lock = threading.Lock()

    def on_message(self, msg: Message) -> None:
        with self._lock:
            if msg.role == "user":
                if self._show_user:
                    self._console.print(f"[bold cyan]>[/bold cyan] {escape(msg.content)}")
            elif msg.role == "assistant":
                for tc in msg.tool_calls:
                    self._console.print(f"[dim]  -> {escape(tc.name)}[/dim]", highlight=False)
                if msg.content and not msg.tool_calls:
                    self._console.print(escape(msg.content))
            elif msg.role == "tool" and msg.content.startswith("Error:"):
                self._console.print(f"[red]  x {escape(msg.content[:200])}[/red]", highlight=False)

    def on_tool_call_start(self) -> None:
        with self._lock:
            self._console.print("[dim]Running tools...[/dim]")

    def on_reasoning(self, text: str) -> None:
        tail = " ".join(text.split())
        if len(tail) > _REASONING_TAIL:
            tail = "..." + tail[-_REASONING_TAIL:]
        with self._lock:
            self._console.print(f"[italic dim]{escape(tail)}[/italic dim]", highlight=False)

    def on_error(self, exc: BaseException) -> None:
        with self._lock:
            format_error(str(exc), self._console)

    def on_warning(self, text: str) -> None:
        with self._lock:
            self._console.print(f"[yellow]Warning:[/yellow] {escape(text)}", highlight=False)

    def callbacks(self) -> TurnCallbacks:
        return TurnCallbacks(
            on_message=self.on_message,
            on_tool_call_start=self.on_tool_call_start,
            on_reasoning=self.on_reasoning,
            on_error=self.on_error,
            on_warning=self.on_warning,
        )


class RichAutoplayDisplay:
    """Prints autoplay lifecycle events."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def on_started(self, message: str, interval: float) -> None:
        self._console.print(
            f"[green]Autoplay started[/green] [dim](every {interval:.0f}s): {escape(message)}[/dim]"
        )

    def on_stopped(self) -> None:
        self._console.print("[yellow]Autoplay stopped[/yellow]")

    def on_error(self, exc: BaseException) -> None:
        if isinstance(exc, AutoplayCircuitOpenError):
            format_error(f"{exc} (last error: {exc.__cause__})", self._console)
        else:
            self._console.print(f"[yellow]Autoplay turn failed:[/yellow] {escape(str(exc))}")
