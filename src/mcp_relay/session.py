# session.py
# Provider sessions: one connected tool server each.
#
# A ProviderSession is a plain record (id, name, script path, state, tools)
# plus exclusive ownership of one transport. StdioTransport is the real
# transport, spawning the server script and speaking MCP over its stdio via
# the `mcp` library. Tests substitute any object with the same four methods.

import asyncio
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Callable, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from mcp_relay.errors import ConnectTimeoutError, ToolExecutionError, UnsupportedScriptError
from mcp_relay.models import SessionState, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_LIST_TIMEOUT = 5.0

# Script extension → interpreter used to launch it.
SCRIPT_COMMANDS: dict[str, str] = {
    ".py": sys.executable or "python",
    ".js": "node",
}


class ToolTransport(Protocol):
    async def open(self) -> None: ...

    async def list_tools(self) -> list[ToolDefinition]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...

    async def aclose(self) -> None: ...


TransportFactory = Callable[[str, list[str]], ToolTransport]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve_command(script_path: str) -> tuple[str, list[str]]:
    """
    Map a server script to the (command, args) that runs it.

    Raises UnsupportedScriptError for extensions outside SCRIPT_COMMANDS or a
    script that does not exist. Nothing is spawned on the failure path.
    """
    path = Path(script_path.replace("\\", "/"))
    command = SCRIPT_COMMANDS.get(path.suffix.lower())
    if command is None:
        allowed = ", ".join(sorted(SCRIPT_COMMANDS))
        raise UnsupportedScriptError(
            f"Server script must be one of [{allowed}], got: {script_path}"
        )
    if not path.is_file():
        raise UnsupportedScriptError(f"Server script does not exist: {script_path}")
    return command, [str(path)]


def _call_result_value(result: Any) -> Any:
    """Reduce an MCP CallToolResult to a string, or to plain structured data."""
    blocks = list(getattr(result, "content", None) or [])
    if blocks and all(getattr(block, "type", None) == "text" for block in blocks):
        return "\n".join(block.text for block in blocks)
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        return structured
    return [block.model_dump(mode="json", exclude_none=True) for block in blocks]


# ---------------------------------------------------------------------------
# Stdio transport
# ---------------------------------------------------------------------------


class StdioTransport:
    """MCP client over a spawned subprocess's stdin/stdout."""

    def __init__(self, command: str, args: list[str]) -> None:
        self._params = StdioServerParameters(command=command, args=args)
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    async def open(self) -> None:
        """Spawn the server and run the MCP initialize handshake."""
        stack = AsyncExitStack()
        self._stack = stack
        read, write = await stack.enter_async_context(stdio_client(self._params))
        self._session = await stack.enter_async_context(ClientSession(read, write))
        await self._session.initialize()

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("Transport is not open.")
        return self._session

    async def list_tools(self) -> list[ToolDefinition]:
        listed = await self._require_session().list_tools()
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=tool.inputSchema or {},
            )
            for tool in listed.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        result = await self._require_session().call_tool(name, arguments)
        value = _call_result_value(result)
        if getattr(result, "isError", False):
            raise ToolExecutionError(name, str(value) or f"Tool '{name}' reported an error.")
        return value

    async def aclose(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()


# ---------------------------------------------------------------------------
# ProviderSession
# ---------------------------------------------------------------------------


class ProviderSession:
    """
    A handle to one tool server.

    State moves disconnected → connecting → connected, or → failed when the
    transport cannot be opened or listed in time. `tools` is only assigned
    once the full listing has arrived.
    """

    def __init__(
        self,
        session_id: str,
        name: str,
        script_path: str,
        transport_factory: TransportFactory = StdioTransport,
    ) -> None:
        self.id = session_id
        self.name = name
        self.script_path = script_path
        self.state = SessionState.DISCONNECTED
        self.tools: list[ToolDefinition] = []
        self._transport_factory = transport_factory
        self._transport: ToolTransport | None = None
        self._call_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    async def connect(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        list_timeout: float = DEFAULT_LIST_TIMEOUT,
    ) -> list[ToolDefinition]:
        """
        Open the transport and fetch the advertised tools.

        Each phase races its own deadline. On any failure the transport is
        closed before the error propagates and the session is marked failed.
        """
        command, args = resolve_command(self.script_path)
        logger.info("Starting tool server %s: %s %s", self.name, command, " ".join(args))

        self.state = SessionState.CONNECTING
        transport = self._transport_factory(command, args)
        try:
            try:
                async with asyncio.timeout(connect_timeout):
                    await transport.open()
            except TimeoutError as exc:
                raise ConnectTimeoutError(
                    f"Timed out after {connect_timeout:g}s connecting to {self.script_path}; "
                    "check that the server script starts correctly."
                ) from exc

            try:
                async with asyncio.timeout(list_timeout):
                    tools = await transport.list_tools()
            except TimeoutError as exc:
                raise ConnectTimeoutError(
                    f"Timed out after {list_timeout:g}s listing tools of {self.script_path}."
                ) from exc
        except BaseException:
            self.state = SessionState.FAILED
            await self._close_transport(transport)
            raise

        self._transport = transport
        self.tools = list(tools)
        self.state = SessionState.CONNECTED
        logger.info("Connected to %s with tools: %s", self.name, self.tool_names)
        return self.tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        async with self._call_lock:
            if self._transport is None or not self.connected:
                raise ToolExecutionError(name, f"Server '{self.name}' is not connected.")
            return await self._transport.call_tool(name, arguments)

    async def close(self) -> None:
        """Close the transport. Waits for an in-flight tool call to finish."""
        async with self._call_lock:
            transport, self._transport = self._transport, None
            self.state = SessionState.DISCONNECTED
            if transport is not None:
                await transport.aclose()

    async def _close_transport(self, transport: ToolTransport) -> None:
        try:
            await transport.aclose()
        except Exception:
            logger.warning("Failed to release transport for %s", self.name, exc_info=True)
