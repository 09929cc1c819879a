# dispatcher.py
# Executes a batch of tool call requests against one provider session.
#
# Requests run strictly one at a time in the order given, and each result
# message is appended to history before the next request starts, so tool
# results land in history in the order the assistant asked for them. When a
# result append overflows history, the calls still unanswered get a fresh
# assistant request turn so their results never arrive orphaned.

import asyncio
import logging
from typing import Any, Protocol

from mcp_relay.errors import ToolExecutionError
from mcp_relay.extractor import assistant_request_message, format_tool_result, stringify_result
from mcp_relay.history import ConversationHistory
from mcp_relay.models import DispatchOutcome, Message, ToolCallRequest, ToolOutcome
from mcp_relay.observer import NullObserver, ProgressObserver, notify

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 60.0


class ToolSession(Protocol):
    name: str

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...


class ToolDispatcher:
    """Runs tool calls sequentially and isolates each failure."""

    def __init__(
        self,
        history: ConversationHistory,
        *,
        tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT,
    ) -> None:
        self._history = history
        self._tool_timeout = tool_timeout

    async def _invoke(self, session: ToolSession, request: ToolCallRequest) -> Any:
        try:
            async with asyncio.timeout(self._tool_timeout):
                return await session.call_tool(request.name, request.arguments)
        except ToolExecutionError:
            raise
        except TimeoutError as exc:
            raise ToolExecutionError(
                request.name,
                f"Tool '{request.name}' timed out after {self._tool_timeout:g}s",
            ) from exc
        except Exception as exc:
            raise ToolExecutionError(request.name, str(exc) or exc.__class__.__name__) from exc

    async def dispatch_all(
        self,
        requests: list[ToolCallRequest],
        session: ToolSession,
        observer: ProgressObserver | None = None,
    ) -> list[DispatchOutcome]:
        observer = observer or NullObserver()
        outcomes: list[DispatchOutcome] = []

        for index, request in enumerate(requests):
            notify(observer, "on_tool_call", request.name, request.arguments)
            try:
                result = await self._invoke(session, request)
            except ToolExecutionError as exc:
                logger.warning("Tool %s failed: %s", request.name, exc)
                notify(observer, "on_tool_result", request.name, {"error": str(exc)})
                message = Message(
                    role="tool",
                    content=f"Tool execution failed: {exc}",
                    tool_call_id=request.id,
                )
                outcome = ToolOutcome(success=False, result=str(exc))
            else:
                notify(observer, "on_tool_result", request.name, result)
                message = format_tool_result(request.id, result)
                outcome = ToolOutcome(success=True, result=stringify_result(result))

            if not self._history.append(message):
                remaining = requests[index + 1 :]
                if remaining:
                    logger.info(
                        "History cleared mid-batch; re-issuing %d pending call(s).", len(remaining)
                    )
                    self._history.append(assistant_request_message(remaining))
            outcomes.append(DispatchOutcome(request=request, outcome=outcome))

        return outcomes
