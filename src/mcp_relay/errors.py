# errors.py
# Exception taxonomy for the relay.
#
# Run-fatal errors (CompletionError, ArgumentParseError, AnomalyError) are
# converted to the run's final text by the agent loop. ToolExecutionError is
# always caught by the dispatcher. Registry errors propagate to the caller of
# the specific connect/switch/remove operation.


class McpRelayError(Exception):
    """Base class for every error raised by mcp_relay."""


# ---------------------------------------------------------------------------
# Registry / session lifecycle
# ---------------------------------------------------------------------------


class UnsupportedScriptError(McpRelayError):
    """Raised when a server script is missing or has a disallowed extension."""


class ConnectTimeoutError(McpRelayError, TimeoutError):
    """Raised when the connect handshake or the tool listing misses its deadline."""


class UnknownSessionError(McpRelayError, KeyError):
    """Raised when switch/remove names a session id the registry does not hold."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Unknown session: {self.session_id!r}"


# ---------------------------------------------------------------------------
# Agent run
# ---------------------------------------------------------------------------


class CompletionError(McpRelayError):
    """Raised when the completion endpoint or its transport fails."""


class ArgumentParseError(McpRelayError):
    """Raised when a tool call's arguments payload is not a JSON object."""

    def __init__(self, tool_name: str, raw_payload: object, reason: str = "") -> None:
        self.tool_name = tool_name
        self.raw_payload = raw_payload
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Malformed arguments for tool '{tool_name}'{detail}: {raw_payload!r}"
        )


class ToolExecutionError(McpRelayError):
    """Raised for a single failed tool call. Never escapes the dispatcher."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class AnomalyError(McpRelayError):
    """Raised when an assistant message has neither content nor tool calls."""


class DepthExceededError(McpRelayError):
    """Raised when the iteration limit is hit and no summary could be produced."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(
            f"Stopped after {max_iterations} tool iterations without a final answer."
        )
