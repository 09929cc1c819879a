# extractor.py
# Pure transforms between assistant messages, tool call requests and
# tool-result messages. No I/O, no history access.

import json
from typing import Any

from pydantic import BaseModel

from mcp_relay.errors import ArgumentParseError
from mcp_relay.models import Message, ToolCallRequest


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_arguments(name: str, raw: Any) -> dict[str, Any]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str):
        raise ArgumentParseError(name, raw, "expected a JSON string")

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ArgumentParseError(name, raw, str(exc)) from exc

    if not isinstance(parsed, dict):
        raise ArgumentParseError(name, raw, "expected a JSON object")
    return parsed


def stringify_result(result: Any) -> str:
    """Render a tool result as the text content of a tool message."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    try:
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(result)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_tool_calls(message: Message) -> list[ToolCallRequest]:
    """
    Turn an assistant message's call descriptors into ToolCallRequests.

    Returns an empty list when the message carries no descriptors. That is
    the normal final-answer signal, not an error. Raises ArgumentParseError
    on the first descriptor whose arguments are not a JSON object; no partial
    list is returned.
    """
    if not message.tool_calls:
        return []

    requests: list[ToolCallRequest] = []
    for descriptor in message.tool_calls:
        function = descriptor.get("function") or {}
        name = function.get("name", "")
        requests.append(
            ToolCallRequest(
                id=descriptor.get("id", ""),
                name=name,
                arguments=_parse_arguments(name, function.get("arguments")),
                raw_request=descriptor,
            )
        )
    return requests


def assistant_request_message(requests: list[ToolCallRequest], content: str | None = None) -> Message:
    """Rebuild the assistant turn that issued `requests`, descriptors untouched."""
    return Message(
        role="assistant",
        content=content,
        tool_calls=[r.raw_request for r in requests],
    )


def format_tool_result(call_id: str, result: Any) -> Message:
    return Message(role="tool", content=stringify_result(result), tool_call_id=call_id)
