# run.py
# Entry point. Config and wiring only; no logic lives here.
#
# Usage:
#   mcp-relay --server ./weather.py=weather --agent
#
# Reads DEEPSEEK_API_KEY (and MCP_RELAY_* overrides) from the environment
# or a .env file.

import argparse
import asyncio
import sys

from rich.prompt import Prompt

from mcp_relay import display
from mcp_relay.app import Workbench
from mcp_relay.config import Settings
from mcp_relay.models import ResultEnvelope
from mcp_relay.observer import ConsoleObserver

COMMANDS = {
    "/servers": "List connected tool servers",
    "/connect PATH [NAME]": "Spawn and connect a .py or .js tool server",
    "/switch ID": "Make another server active",
    "/remove ID": "Disconnect a server",
    "/agent on|off": "Toggle the multi-step agent loop",
    "/history": "Show the conversation buffer",
    "/reset": "Clear the conversation buffer",
    "/quit": "Exit",
}


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mcp-relay",
        description="Chat with a model that can call tools on stdio MCP servers.",
    )
    parser.add_argument(
        "--server",
        action="append",
        default=[],
        metavar="PATH[=NAME]",
        help="Tool server script to connect at startup (repeatable).",
    )
    parser.add_argument(
        "--agent",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Start in agent mode (default) or single-pass tool mode.",
    )
    return parser.parse_args(argv)


def _show(envelope: ResultEnvelope, answered: bool = False) -> None:
    """`answered`: ConsoleObserver already printed the final text of an agent run."""
    if answered:
        return
    if not envelope.success:
        display.halt(envelope.message)
    elif envelope.mode == "server" and envelope.tools is not None:
        display.server_connected(envelope.server_name or "", envelope.server_id or "", envelope.tools)
    else:
        display.final_result(envelope.message)


async def _command(bench: Workbench, line: str) -> bool:
    """Handle one slash command. Returns False when the user asked to quit."""
    name, _, rest = line.partition(" ")
    rest = rest.strip()

    if name in ("/quit", "/exit"):
        return False
    if name == "/help":
        display.help_text(COMMANDS)
    elif name == "/servers":
        display.session_list(bench.list_servers())
    elif name == "/connect" and rest:
        path, _, server_name = rest.partition(" ")
        _show(await bench.connect_server(path, server_name.strip() or None))
    elif name == "/switch" and rest:
        _show(await bench.switch_server(rest))
    elif name == "/remove" and rest:
        envelope = await bench.remove_server(rest)
        if envelope.success:
            display.info(envelope.message)
        else:
            display.halt(envelope.message)
    elif name == "/agent" and rest in ("on", "off"):
        bench.set_agent_mode(rest == "on")
        display.info(f"Agent mode {rest}.")
    elif name == "/history":
        display.history_view(bench.completion.history.snapshot(), bench.completion.history.capacity)
    elif name == "/reset":
        bench.reset_conversation()
        display.info("Conversation cleared.")
    else:
        display.help_text(COMMANDS)
    return True


async def _send(bench: Workbench, line: str) -> None:
    display.prompt_received(line)
    envelope = await bench.smart_send(line)
    ran = envelope.mode == "agent" and bench.last_run is not None
    _show(envelope, answered=ran)
    if ran:
        display.run_summary(bench.last_run)


async def _repl(settings: Settings, servers: list[str], agent_mode: bool) -> None:
    bench = Workbench.from_settings(settings, ConsoleObserver(), agent_mode=agent_mode)
    display.banner(settings.model, settings.base_url, agent_mode)

    try:
        for entry in servers:
            path, _, name = entry.partition("=")
            _show(await bench.connect_server(path, name or None))

        while True:
            line = (await asyncio.to_thread(Prompt.ask, "[bold cyan]you[/bold cyan]")).strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _command(bench, line):
                    break
                continue

            await _send(bench, line)
    finally:
        await bench.aclose()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = Settings.from_env()
    display.configure_logging(settings.log_level)

    if not settings.api_key:
        display.halt("Set the DEEPSEEK_API_KEY environment variable.")
        sys.exit(1)

    try:
        asyncio.run(_repl(settings, args.server, args.agent))
    except (KeyboardInterrupt, EOFError):
        pass


if __name__ == "__main__":
    main()
