# models.py
# Data contracts for the MCP relay agent.
# No business logic lives here: pure schema, validation and wire shapes.

import copy
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant", "tool"]


class Message(BaseModel):
    """One turn in a conversation, in the completion endpoint's shape."""

    role: Role
    content: str | None = None
    tool_calls: list[dict[str, Any]] | None = Field(
        default=None,
        description="Call descriptors exactly as the endpoint emitted them.",
    )
    tool_call_id: str | None = Field(
        default=None, description="Set only on tool messages; id of the answered call."
    )

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_wire(self) -> dict[str, Any]:
        """Endpoint dict, with unset optional fields omitted.

        Assistant messages keep an explicit ``content: None`` when they only
        carry tool calls, which is what OpenAI-compatible endpoints expect.
        """
        wire: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            wire["tool_calls"] = copy.deepcopy(self.tool_calls)
        if self.tool_call_id is not None:
            wire["tool_call_id"] = self.tool_call_id
        return wire

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=data.get("role", "assistant"),
            content=data.get("content"),
            tool_calls=data.get("tool_calls") or None,
            tool_call_id=data.get("tool_call_id"),
        )


class ToolDefinition(BaseModel):
    """A tool advertised by a provider session."""

    name: str = Field(..., description="Unique within one session's tool set.")
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict, description="JSON-Schema object.")

    def to_schema(self) -> dict[str, Any]:
        """Function-calling schema entry for the completion request."""
        function: dict[str, Any] = {"name": self.name, "parameters": self.parameters}
        if self.description is not None:
            function["description"] = self.description
        return {"type": "function", "function": function}


class ToolCallRequest(BaseModel):
    """A tool call extracted from an assistant message."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    raw_request: dict[str, Any] = Field(
        default_factory=dict,
        description="Original call descriptor, replayed verbatim on the follow-up turn.",
    )


class ToolOutcome(BaseModel):
    success: bool
    result: str = Field(default="", description="Stringified tool output or failure text.")


class DispatchOutcome(BaseModel):
    request: ToolCallRequest
    outcome: ToolOutcome


class ToolCallRecord(BaseModel):
    """Entry of an agent run's tool call log."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    outcome: ToolOutcome


class StopReason(str, Enum):
    DONE = "done"
    DEPTH_EXCEEDED = "depth_exceeded"
    ABORTED = "aborted"


class AgentRunResult(BaseModel):
    """Produced fresh for every user query; never persisted."""

    final_text: str
    tool_call_log: list[ToolCallRecord] = Field(default_factory=list)
    iterations: int = 0
    stop_reason: StopReason = StopReason.DONE


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class SessionInfo(BaseModel):
    """Read-only row of ProviderRegistry.list()."""

    id: str
    name: str
    path: str
    active: bool
    connected: bool


class FileAttachment(BaseModel):
    path: str
    name: str
    type: str = ""


class ResultEnvelope(BaseModel):
    """What every top-level entry point hands back to the surrounding app."""

    success: bool
    message: str = ""
    mode: Literal["chat", "tools", "agent", "server"] = "chat"
    server_id: str | None = None
    server_name: str | None = None
    tools: list[str] | None = None
