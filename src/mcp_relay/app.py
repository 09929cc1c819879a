# app.py
# Application facade: the only surface the CLI (or any other front end)
# talks to. Wires settings, history, completion client, agent loop and
# provider registry together.
#
# Every public coroutine here returns a ResultEnvelope and never raises.

import logging

from mcp_relay.agent import AgentLoop, augment_query, format_tool_log
from mcp_relay.completion import CompletionClient
from mcp_relay.config import Settings
from mcp_relay.errors import ConnectTimeoutError, McpRelayError, UnknownSessionError
from mcp_relay.history import ConversationHistory
from mcp_relay.models import (
    AgentRunResult,
    FileAttachment,
    ResultEnvelope,
    SessionInfo,
    StopReason,
)
from mcp_relay.observer import NullObserver, ProgressObserver
from mcp_relay.registry import ProviderRegistry
from mcp_relay.session import StdioTransport, TransportFactory

logger = logging.getLogger(__name__)

NO_SERVER_MESSAGE = "Connect to a tool server first."


def render_attachments(attachments: list[FileAttachment] | None) -> str:
    """Describe attached files for the model. File contents are never read here."""
    if not attachments:
        return ""
    lines = ["Attached files:"]
    for attachment in attachments:
        kind = f" ({attachment.type})" if attachment.type else ""
        lines.append(f"- {attachment.name}{kind}: {attachment.path}")
    return "\n".join(lines)


def _connect_hint(exc: Exception) -> str:
    if isinstance(exc, ConnectTimeoutError):
        return (
            "\n\nPossible causes:\n"
            "1. Wrong server script path\n"
            "2. The server script fails on startup\n"
            "3. The server takes too long to start"
        )
    if isinstance(exc, FileNotFoundError):
        return "\n\nThe interpreter or script was not found; check the path."
    return ""


class Workbench:
    """
    One conversation plus the tool servers it can use.

    Example:
        bench = Workbench.from_settings(Settings.from_env())
        await bench.connect_server("./weather.py", "weather")
        envelope = await bench.send_message_with_agent("weather in Paris")
    """

    def __init__(
        self,
        completion: CompletionClient,
        registry: ProviderRegistry,
        *,
        max_iterations: int = 5,
        max_tokens: int | None = None,
        tool_timeout: float | None = 60.0,
        observer: ProgressObserver | None = None,
        agent_mode: bool = True,
    ) -> None:
        self.completion = completion
        self.registry = registry
        self._observer = observer or NullObserver()
        self.agent = AgentLoop(
            completion,
            max_iterations=max_iterations,
            max_tokens=max_tokens,
            tool_timeout=tool_timeout,
            observer=self._observer,
        )
        self._agent_mode = agent_mode
        self.last_run: AgentRunResult | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        observer: ProgressObserver | None = None,
        *,
        transport_factory: TransportFactory = StdioTransport,
        agent_mode: bool = True,
    ) -> "Workbench":
        completion = CompletionClient(
            settings.api_key,
            base_url=settings.base_url,
            model=settings.model,
            history=ConversationHistory(settings.history_capacity),
            max_tokens=settings.max_tokens,
        )
        registry = ProviderRegistry(
            observer,
            transport_factory=transport_factory,
            connect_timeout=settings.connect_timeout,
            list_timeout=settings.list_timeout,
        )
        return cls(
            completion,
            registry,
            max_iterations=settings.max_iterations,
            max_tokens=settings.max_tokens,
            tool_timeout=settings.tool_timeout,
            observer=observer,
            agent_mode=agent_mode,
        )

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    @property
    def agent_mode(self) -> bool:
        return self._agent_mode

    def set_agent_mode(self, enabled: bool) -> bool:
        logger.info("Agent mode %s", "on" if enabled else "off")
        self._agent_mode = enabled
        return self._agent_mode

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def chat(
        self, message: str, attachments: list[FileAttachment] | None = None
    ) -> ResultEnvelope:
        """Talk to the model directly, without tools."""
        try:
            reply = await self.completion.chat(augment_query(message, render_attachments(attachments)))
        except Exception as exc:
            logger.exception("Chat request failed")
            return ResultEnvelope(success=False, message=f"Chat failed: {exc}", mode="chat")
        if not reply.content:
            return ResultEnvelope(success=False, message="The model returned no content.", mode="chat")
        return ResultEnvelope(success=True, message=reply.content, mode="chat")

    async def send_message(
        self, message: str, attachments: list[FileAttachment] | None = None
    ) -> ResultEnvelope:
        """Single-pass tool mode against the active server."""
        session = self.registry.active
        if session is None:
            return ResultEnvelope(success=False, message=NO_SERVER_MESSAGE, mode="tools")
        try:
            text = await self.agent.process_query(
                message, session, attachments=render_attachments(attachments)
            )
        except Exception as exc:
            logger.exception("Tool-mode request failed")
            return ResultEnvelope(
                success=False,
                message=f"Sorry, an error occurred while processing your request: {exc}",
                mode="tools",
            )
        return ResultEnvelope(success=True, message=text, mode="tools")

    async def send_message_with_agent(
        self, message: str, attachments: list[FileAttachment] | None = None
    ) -> ResultEnvelope:
        """Full agent loop against the active server."""
        self.last_run = None
        session = self.registry.active
        if session is None:
            return ResultEnvelope(success=False, message=NO_SERVER_MESSAGE, mode="agent")
        try:
            result = await self.agent.run(
                message, session, attachments=render_attachments(attachments)
            )
        except Exception as exc:
            logger.exception("Agent request failed")
            return ResultEnvelope(
                success=False, message=f"Agent request failed: {exc}", mode="agent"
            )

        self.last_run = result
        text = result.final_text
        if result.tool_call_log:
            text = f"{format_tool_log(result.tool_call_log)}\n\n{text}"
        return ResultEnvelope(
            success=result.stop_reason != StopReason.ABORTED, message=text, mode="agent"
        )

    async def smart_send(
        self, message: str, attachments: list[FileAttachment] | None = None
    ) -> ResultEnvelope:
        """Route by mode: agent loop, single-pass tools, or plain chat without a server."""
        if self.registry.active is None:
            return await self.chat(message, attachments)
        if self._agent_mode:
            return await self.send_message_with_agent(message, attachments)
        return await self.send_message(message, attachments)

    def reset_conversation(self) -> None:
        self.completion.history.reset()

    # ------------------------------------------------------------------
    # Tool servers
    # ------------------------------------------------------------------

    def list_servers(self) -> list[SessionInfo]:
        return self.registry.list()

    async def connect_server(self, script_path: str, name: str | None = None) -> ResultEnvelope:
        try:
            session_id = await self.registry.connect(script_path, name)
        except Exception as exc:
            if not isinstance(exc, (McpRelayError, OSError)):
                logger.exception("Unexpected error connecting %s", script_path)
            return ResultEnvelope(
                success=False,
                message=f"Failed to connect tool server: {exc}{_connect_hint(exc)}",
                mode="server",
            )
        session = self.registry.get(session_id)
        return ResultEnvelope(
            success=True,
            message="Connected to tool server.",
            mode="server",
            server_id=session_id,
            server_name=session.name,
            tools=session.tool_names,
        )

    async def switch_server(self, session_id: str) -> ResultEnvelope:
        try:
            session = await self.registry.switch_active(session_id)
        except UnknownSessionError as exc:
            return ResultEnvelope(success=False, message=str(exc), mode="server")
        return ResultEnvelope(
            success=True,
            message="Switched tool server.",
            mode="server",
            server_id=session.id,
            server_name=session.name,
            tools=session.tool_names,
        )

    async def remove_server(self, session_id: str) -> ResultEnvelope:
        try:
            new_active = await self.registry.remove(session_id)
        except UnknownSessionError as exc:
            return ResultEnvelope(success=False, message=str(exc), mode="server")
        return ResultEnvelope(
            success=True, message="Removed tool server.", mode="server", server_id=new_active
        )

    async def aclose(self) -> None:
        await self.registry.aclose()
        try:
            await self.completion.aclose()
        except Exception:
            logger.warning("Failed to close the completion client", exc_info=True)
