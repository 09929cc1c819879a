import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcp_relay.models import ToolDefinition

SEARCH_TOOL = ToolDefinition(
    name="search",
    description="Search the web.",
    parameters={
        "type": "object",
        "properties": {"query": {"type": "string"}},
        "required": ["query"],
    },
)


class FakeTransport:
    """Scriptable stand-in for StdioTransport."""

    def __init__(
        self,
        tools=None,
        results=None,
        open_delay: float = 0.0,
        list_delay: float = 0.0,
        open_error: Exception | None = None,
        close_error: Exception | None = None,
    ):
        self.tools = list(tools or [])
        self.results = dict(results or {})
        self.open_delay = open_delay
        self.list_delay = list_delay
        self.open_error = open_error
        self.close_error = close_error
        self.opened = False
        self.closed = False
        self.calls: list[tuple[str, dict]] = []

    async def open(self):
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def list_tools(self):
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        return list(self.tools)

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        result = self.results.get(name, "")
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(arguments)
        return result

    async def aclose(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class TransportFactory:
    """Hands out queued FakeTransports (or a default one) and records commands."""

    def __init__(self, *transports: FakeTransport):
        self.queue = list(transports)
        self.created: list[FakeTransport] = []
        self.commands: list[tuple[str, list[str]]] = []

    def __call__(self, command, args):
        self.commands.append((command, args))
        transport = self.queue.pop(0) if self.queue else FakeTransport(tools=[SEARCH_TOOL])
        self.created.append(transport)
        return transport


def _tool_call(call_id: str, name: str, arguments) -> dict:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": arguments},
    }


def _reply(content=None, tool_calls=None):
    """Fake chat.completions.create() return value with one choice."""
    wire = {"role": "assistant"}
    if content is not None:
        wire["content"] = content
    if tool_calls:
        wire["tool_calls"] = tool_calls
    message = MagicMock()
    message.model_dump.return_value = wire
    response = MagicMock()
    response.choices = [MagicMock(message=message)]
    return response


@pytest.fixture
def tool_call():
    return _tool_call


@pytest.fixture
def reply():
    return _reply


@pytest.fixture
def openai_client():
    """Mocked AsyncOpenAI: set .chat.completions.create.side_effect per test."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def script(tmp_path):
    """Create an (empty) server script file and return its path."""

    def make(name: str = "server.py") -> str:
        path = tmp_path / name
        path.write_text("# tool server\n", encoding="utf-8")
        return str(path)

    return make


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def transport_factory():
    return TransportFactory


@pytest.fixture
def search_tool():
    return SEARCH_TOOL
