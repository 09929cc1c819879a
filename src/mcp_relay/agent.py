# agent.py
# Agent loop controller.
#
# The loop owns all control flow. The model only proposes tool calls; the
# loop decides whether to dispatch, finish, or abort, and it alone bounds
# the number of iterations.
#
# Control flow:
#   init (seed user message) → awaiting_completion
#   → tool calls?   dispatching → append_results → awaiting_completion …
#   → content only? finishing → done
#   → neither?      aborted (AnomalyError)
#   → iteration limit reached → one tool-less summary request → depth_exceeded
#
# CompletionError, ArgumentParseError and AnomalyError end the run with their
# message as the final text. Individual tool failures never end the run.

import json
import logging
from enum import Enum
from typing import Any

from mcp_relay.completion import CompletionClient
from mcp_relay.dispatcher import DEFAULT_TOOL_TIMEOUT, ToolDispatcher
from mcp_relay.errors import (
    AnomalyError,
    ArgumentParseError,
    CompletionError,
    DepthExceededError,
    ToolExecutionError,
)
from mcp_relay.extractor import assistant_request_message, extract_tool_calls
from mcp_relay.models import (
    AgentRunResult,
    DispatchOutcome,
    Message,
    StopReason,
    ToolCallRecord,
    ToolDefinition,
)
from mcp_relay.observer import NullObserver, ProgressObserver, notify
from mcp_relay.session import ProviderSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUMMARY_PROMPT = (
    "The tool call limit for this request has been reached. Based on the tool "
    "results above, summarize the final answer to my original question."
)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class LoopState(str, Enum):
    INIT = "init"
    AWAITING_COMPLETION = "awaiting_completion"
    DISPATCHING = "dispatching"
    FINISHING = "finishing"
    APPEND_RESULTS = "append_results"
    DONE = "done"
    DEPTH_EXCEEDED = "depth_exceeded"
    ABORTED = "aborted"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _DetachedSession:
    """Stands in for the provider when no tool server is active."""

    name = "none"

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        raise ToolExecutionError(name, "No tool server is connected.")


def augment_query(query: str, attachments: str = "") -> str:
    """Append an already-rendered attachment block to the user's query."""
    if not attachments.strip():
        return query
    return f"{query}\n\n{attachments.strip()}"


def format_tool_log(log: list[ToolCallRecord]) -> str:
    """Render a tool call log as plain text lines, one call and one outcome each."""
    lines: list[str] = []
    for record in log:
        lines.append(
            f"[Tool: {record.name}] args: {json.dumps(record.arguments, ensure_ascii=False)}"
        )
        if record.outcome.success:
            lines.append(f"[Tool result] {record.outcome.result}")
        else:
            lines.append(f"[Tool failed] {record.outcome.result}")
    return "\n".join(lines)


def _records(outcomes: list[DispatchOutcome]) -> list[ToolCallRecord]:
    return [
        ToolCallRecord(name=o.request.name, arguments=o.request.arguments, outcome=o.outcome)
        for o in outcomes
    ]


# ---------------------------------------------------------------------------
# AgentLoop
# ---------------------------------------------------------------------------


class AgentLoop:
    """
    Bounded completion → dispatch → append loop over one conversation.

    The conversation history is the completion client's; the loop resets it
    at the start of every agent run.

    Example:
        loop = AgentLoop(client, max_iterations=5)
        result = await loop.run("weather in Paris", registry.active)
        print(result.final_text)
    """

    def __init__(
        self,
        completion: CompletionClient,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_tokens: int | None = None,
        tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT,
        observer: ProgressObserver | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        self._completion = completion
        self._history = completion.history
        self._max_iterations = max_iterations
        self._max_tokens = max_tokens
        self._observer = observer or NullObserver()
        self._dispatcher = ToolDispatcher(self._history, tool_timeout=tool_timeout)
        self.state = LoopState.INIT

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    async def _request(self, pending: list[Message], tools: list[ToolDefinition]) -> Message:
        self.state = LoopState.AWAITING_COMPLETION
        return await self._completion.complete(pending, tools, self._max_tokens)

    async def _dispatch(
        self,
        assistant: Message,
        session: ProviderSession | None,
        observer: ProgressObserver,
    ) -> list[DispatchOutcome]:
        try:
            requests = extract_tool_calls(assistant)
        except ArgumentParseError:
            # Nothing will answer these calls; drop the turn that issued them.
            if self._history.last() is assistant:
                self._history.discard_last()
            raise
        self.state = LoopState.DISPATCHING

        # The assistant turn that issued these calls must directly precede
        # their results; restore it if an overflow reset dropped it.
        if self._history.last() is not assistant:
            self._history.append(assistant_request_message(requests, assistant.content))

        target = session if session is not None else _DetachedSession()
        outcomes = await self._dispatcher.dispatch_all(requests, target, observer)
        self.state = LoopState.APPEND_RESULTS
        return outcomes

    async def _summarize(self, iterations: int) -> str:
        """Forced-summary policy for the iteration limit."""
        self.state = LoopState.DEPTH_EXCEEDED
        logger.warning("Reached %d iterations; requesting a final summary.", iterations)
        try:
            summary = await self._request([Message(role="user", content=SUMMARY_PROMPT)], [])
        except CompletionError as exc:
            logger.error("Summary request failed: %s", exc)
            return str(exc)
        return summary.content or str(DepthExceededError(self._max_iterations))

    def _finish(
        self,
        text: str,
        log: list[ToolCallRecord],
        iterations: int,
        reason: StopReason,
        observer: ProgressObserver,
    ) -> AgentRunResult:
        self.state = LoopState(reason.value)
        notify(observer, "on_final_response", text)
        return AgentRunResult(
            final_text=text,
            tool_call_log=log,
            iterations=iterations,
            stop_reason=reason,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        query: str,
        session: ProviderSession | None,
        *,
        attachments: str = "",
        observer: ProgressObserver | None = None,
    ) -> AgentRunResult:
        """
        Full agent run for one user query against `session`.

        Never raises for run-level failures: the caller always gets an
        AgentRunResult whose final_text is the answer, the summary, or the
        error that stopped the run.
        """
        observer = observer or self._observer
        log: list[ToolCallRecord] = []
        iteration = 0

        self.state = LoopState.INIT
        self._history.reset()
        pending = [Message(role="user", content=augment_query(query, attachments))]
        tools = list(session.tools) if session is not None else []

        try:
            while iteration < self._max_iterations:
                iteration += 1
                logger.info("Agent iteration %d/%d", iteration, self._max_iterations)

                assistant = await self._request(pending, tools)
                pending = []

                if not assistant.has_tool_calls:
                    if not assistant.has_content:
                        raise AnomalyError("Response has no content and no tool calls.")
                    self.state = LoopState.FINISHING
                    return self._finish(assistant.content, log, iteration, StopReason.DONE, observer)

                outcomes = await self._dispatch(assistant, session, observer)
                log.extend(_records(outcomes))

            text = await self._summarize(iteration)
            return self._finish(text, log, iteration, StopReason.DEPTH_EXCEEDED, observer)

        except (CompletionError, ArgumentParseError, AnomalyError) as exc:
            logger.warning("Agent run aborted: %s", exc)
            return self._finish(str(exc), log, iteration, StopReason.ABORTED, observer)

    async def process_query(
        self,
        query: str,
        session: ProviderSession | None,
        *,
        attachments: str = "",
        observer: ProgressObserver | None = None,
    ) -> str:
        """
        Single-pass tool mode: one completion with tools, one round of tool
        calls, one tool-less follow-up. History is kept across calls.

        Raises CompletionError or ArgumentParseError; the caller turns them
        into a result envelope.
        """
        observer = observer or self._observer
        tools = list(session.tools) if session is not None else []
        parts: list[str] = []

        assistant = await self._request(
            [Message(role="user", content=augment_query(query, attachments))], tools
        )
        if assistant.content:
            parts.append(assistant.content)

        if assistant.has_tool_calls:
            outcomes = await self._dispatch(assistant, session, observer)
            for outcome in outcomes:
                parts.append(
                    f"[Called tool {outcome.request.name} with args "
                    f"{json.dumps(outcome.request.arguments, ensure_ascii=False)}]"
                )
            follow_up = await self._request([], [])
            if follow_up.content:
                parts.append(follow_up.content)

        self.state = LoopState.DONE
        return "\n".join(parts)
