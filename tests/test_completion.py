from unittest.mock import patch

import pytest
from openai import OpenAIError

from mcp_relay.completion import CompletionClient
from mcp_relay.errors import CompletionError
from mcp_relay.history import ConversationHistory
from mcp_relay.models import Message


def _client(openai_client, **kwargs) -> CompletionClient:
    return CompletionClient("sk-test", client=openai_client, **kwargs)


def test_builds_async_openai_with_credential_and_base_url():
    with patch("mcp_relay.completion.AsyncOpenAI") as mock_cls:
        client = CompletionClient("sk-test", base_url="https://example.test/v1")

    mock_cls.assert_called_once_with(base_url="https://example.test/v1", api_key="sk-test")
    assert client.base_url == "https://example.test/v1"


@pytest.mark.asyncio
async def test_complete_appends_request_and_reply(openai_client, reply, search_tool):
    openai_client.chat.completions.create.return_value = reply(content="Hello!")
    client = _client(openai_client, model="deepseek-chat", max_tokens=256)

    answer = await client.complete([Message(role="user", content="hi")], [search_tool])

    assert answer.role == "assistant"
    assert answer.content == "Hello!"
    assert [m.role for m in client.history.snapshot()] == ["user", "assistant"]

    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "deepseek-chat"
    assert kwargs["max_tokens"] == 256
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert kwargs["tools"] == [search_tool.to_schema()]
    assert kwargs["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_no_tools_means_no_tool_choice(openai_client, reply):
    openai_client.chat.completions.create.return_value = reply(content="ok")
    client = _client(openai_client)

    await client.complete([Message(role="user", content="hi")], [], max_tokens=50)

    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs
    assert kwargs["max_tokens"] == 50


@pytest.mark.asyncio
async def test_reply_keeps_tool_call_descriptors(openai_client, reply, tool_call):
    descriptor = tool_call("c1", "search", {"query": "x"})
    openai_client.chat.completions.create.return_value = reply(tool_calls=[descriptor])
    client = _client(openai_client)

    answer = await client.complete([Message(role="user", content="find x")])

    assert answer.content is None
    assert answer.tool_calls == [descriptor]
    assert client.history.last() is answer


@pytest.mark.asyncio
async def test_endpoint_failure_raises_completion_error(openai_client):
    openai_client.chat.completions.create.side_effect = OpenAIError("connection refused")
    client = _client(openai_client)

    with pytest.raises(CompletionError, match="connection refused"):
        await client.complete([Message(role="user", content="hi")])

    # The caller's message is not dropped.
    assert [m.content for m in client.history.snapshot()] == ["hi"]


@pytest.mark.asyncio
async def test_empty_choices_is_a_completion_error(openai_client, reply):
    response = reply(content="unused")
    response.choices = []
    openai_client.chat.completions.create.return_value = response

    with pytest.raises(CompletionError, match="no choices"):
        await _client(openai_client).complete([Message(role="user", content="hi")])


@pytest.mark.asyncio
async def test_history_is_shared_with_caller(openai_client, reply):
    openai_client.chat.completions.create.return_value = reply(content="two")
    history = ConversationHistory(capacity=10)
    history.append(Message(role="user", content="one"))
    client = _client(openai_client, history=history)

    await client.chat("again")

    sent = openai_client.chat.completions.create.call_args.kwargs["messages"]
    assert [m["content"] for m in sent] == ["one", "again"]
    assert len(history) == 3


@pytest.mark.asyncio
async def test_aclose_closes_http_client(openai_client):
    await _client(openai_client).aclose()
    openai_client.close.assert_awaited_once()
