# completion.py
# Completion client for an OpenAI-compatible chat endpoint.
#
# The client owns the conversation history: every message a caller submits
# is appended before the request is built, and the assistant reply is
# appended before it is returned.

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from mcp_relay.config import DEFAULT_BASE_URL, DEFAULT_MODEL
from mcp_relay.errors import CompletionError
from mcp_relay.history import ConversationHistory
from mcp_relay.models import Message, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000


class CompletionClient:
    """
    Sends conversation history plus tool schemas to the model endpoint.

    Example:
        client = CompletionClient(api_key="sk-...", history=ConversationHistory())
        reply = await client.complete([Message(role="user", content="hi")])
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        history: ConversationHistory | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._base_url = base_url
        self._max_tokens = max_tokens
        self.history = history if history is not None else ConversationHistory()
        self._client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _build_request(self, tools: list[ToolDefinition], max_tokens: int) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self._model,
            "messages": self.history.to_wire(),
            "max_tokens": max_tokens,
        }
        if tools:
            request["tools"] = [tool.to_schema() for tool in tools]
            request["tool_choice"] = "auto"
        return request

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        max_tokens: int | None = None,
    ) -> Message:
        """
        Append `messages` to history, request the next assistant turn, append
        and return it.

        Raises CompletionError on any endpoint or transport failure. The
        submitted messages stay in history even when the request fails.
        """
        self.history.extend(messages)
        request = self._build_request(tools or [], max_tokens or self._max_tokens)

        logger.debug(
            "Requesting completion: %d message(s), %d tool(s).",
            len(request["messages"]),
            len(tools or []),
        )
        try:
            response = await self._client.chat.completions.create(**request)
        except OpenAIError as exc:
            logger.error("Completion request failed: %s", exc)
            raise CompletionError(f"AI service request failed: {exc}") from exc

        if not response.choices:
            raise CompletionError("AI service request failed: response contained no choices.")

        wire = response.choices[0].message.model_dump(exclude_none=True)
        assistant = Message.from_wire({**wire, "role": "assistant"})
        self.history.append(assistant)
        return assistant

    async def chat(self, text: str) -> Message:
        """Single tool-less exchange on top of the current history."""
        return await self.complete([Message(role="user", content=text)])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.close()
