# display.py
# All terminal output for the MCP relay.
#
# This module owns presentation entirely. The agent loop and registry never
# format strings for the terminal; ConsoleObserver and run.py call named
# functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan    : routing / session events
#   blue    : model calls
#   magenta : tool calls and their results
#   green   : success / final answers
#   red     : failures, halts

import json
import logging
from typing import Any

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from mcp_relay.models import AgentRunResult, Message, SessionInfo, StopReason

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def configure_logging(level: str = "WARNING") -> None:
    """Route stdlib logging through rich on the shared console."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------------


def banner(model: str, base_url: str, agent_mode: bool) -> None:
    mode = "agent" if agent_mode else "tools"
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]MCP Relay[/bold cyan]\n"
            "[dim]Chat with a model that delegates to stdio tool servers[/dim]\n\n"
            f"[dim]Model    :[/dim] [white]{model}[/white]\n"
            f"[dim]Endpoint :[/dim] [white]{base_url}[/white]\n"
            f"[dim]Mode     :[/dim] [white]{mode}[/white]\n\n"
            "[dim]Type /help for commands.[/dim]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def help_text(commands: dict[str, str]) -> None:
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
    table.add_column("Command", style="bold cyan")
    table.add_column("Description", style="white")
    for command, description in commands.items():
        table.add_row(command, description)
    console.print(table)


def prompt_received(prompt: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("USER PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Provider sessions
# ---------------------------------------------------------------------------


def session_list(sessions: list[SessionInfo]) -> None:
    console.print()
    if not sessions:
        console.print(_label("SERVERS", "cyan"), "[dim] No tool servers connected.[/dim]")
        return

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("", justify="center", width=2)
    table.add_column("ID", style="bold white")
    table.add_column("Name", style="white")
    table.add_column("Path", style="dim white")
    table.add_column("Status", justify="center", width=12)

    for info in sessions:
        status = "[green]connected[/green]" if info.connected else "[red]offline[/red]"
        table.add_row("●" if info.active else "", info.id, info.name, _mono(info.path, 48), status)

    console.print(
        Panel(table, title=_label("SERVERS", "cyan"), border_style="cyan", padding=(0, 1))
    )


def server_connected(name: str, server_id: str, tools: list[str]) -> None:
    console.print()
    listing = ", ".join(tools) if tools else "[dim]none[/dim]"
    console.print(
        Panel(
            f"[bold green]Connected[/bold green] [white]{name}[/white] [dim]({server_id})[/dim]\n"
            f"[dim]Tools:[/dim] [white]{listing}[/white]",
            title=_label("SERVER ✓", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Agent loop
# ---------------------------------------------------------------------------


def tool_call(name: str, arguments: dict[str, Any]) -> None:
    console.print(
        f"  [magenta]Tool[/magenta]     [bold white]{name}[/bold white]"
        f"  [dim]{escape(_mono(_render(arguments), 160))}[/dim]"
    )


def tool_result(name: str, result: Any) -> None:
    if isinstance(result, dict) and set(result) == {"error"}:
        console.print(f"  [red]Failed[/red]   [white]{escape(_mono(str(result['error']), 160))}[/white]")
        return
    console.print(f"  [magenta]Observe[/magenta]  [white]{escape(_mono(_render(result), 140))}[/white]")


def run_summary(result: AgentRunResult) -> None:
    """Tree view of one agent run: each tool call with its outcome."""
    if not result.tool_call_log:
        return

    color = "green" if result.stop_reason == StopReason.DONE else "yellow"
    graph = Tree(
        f"[bold {color}]Agent run: {result.iterations} iteration(s), "
        f"{result.stop_reason.value}[/bold {color}]"
    )
    for index, record in enumerate(result.tool_call_log, start=1):
        node = graph.add(f"[bold magenta]Call {index}: {record.name}[/bold magenta]")
        args_node = node.add("[cyan]Arguments[/cyan]")
        for key, value in record.arguments.items():
            args_node.add(f"{key}: {escape(_mono(_render(value), 80))}")
        text = record.outcome.result.replace("\n", " ")
        if record.outcome.success:
            node.add(f"[green]Result:[/green] {escape(_mono(text, 80))}")
        else:
            node.add(f"[bold red]Error:[/bold red] {escape(_mono(text, 80))}")

    console.print()
    console.print(graph)


def history_view(messages: tuple[Message, ...], capacity: int) -> None:
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Role", width=10)
    table.add_column("Content", style="dim white")

    for index, message in enumerate(messages):
        if message.tool_calls:
            names = [d.get("function", {}).get("name", "?") for d in message.tool_calls]
            body = f"→ {', '.join(names)}"
        else:
            body = message.content or ""
        table.add_row(str(index), message.role, escape(_mono(body.replace("\n", " "), 80)))

    console.print(
        Panel(
            table,
            title=f"[dim]HISTORY {len(messages)}/{capacity}[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def info(message: str) -> None:
    console.print(_label("RELAY", "cyan"), f"[cyan] {message}[/cyan]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
