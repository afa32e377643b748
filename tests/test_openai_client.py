import json

import pytest

from config.settings import OpenAIConfig
from errors import UpstreamUnavailable
from llm.openai_client import OpenAIChatClient, to_wire
from models import Message
from tools import TOOL_DECLARATIONS

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


def completion(message):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-3.5-turbo",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
    }


@pytest.fixture
def client():
    return OpenAIChatClient(OpenAIConfig(api_key="test-key"))


def test_text_reply(httpx_mock, client):
    httpx_mock.add_response(
        method="POST", url=COMPLETIONS_URL,
        json=completion({"role": "assistant", "content": "Hello!"}),
    )
    reply = client.complete([Message.user("hi")], tools=TOOL_DECLARATIONS, tool_choice="auto")
    assert reply.content == "Hello!"
    assert reply.tool_calls == []

    sent = json.loads(httpx_mock.get_request().content)
    assert sent["tool_choice"] == "auto"
    assert sent["messages"] == [{"role": "user", "content": "hi"}]
    assert len(sent["tools"]) == len(TOOL_DECLARATIONS)


def test_tool_call_reply(httpx_mock, client):
    httpx_mock.add_response(
        method="POST", url=COMPLETIONS_URL,
        json=completion({
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_7",
                "type": "function",
                "function": {"name": "get_basket", "arguments": "{\"userId\": \"2\"}"},
            }],
        }),
    )
    reply = client.complete([Message.user("my basket")], tools=TOOL_DECLARATIONS)
    assert reply.content is None
    assert reply.tool_calls[0].id == "call_7"
    assert reply.tool_calls[0].name == "get_basket"
    assert json.loads(reply.tool_calls[0].arguments) == {"userId": "2"}


def test_server_error_is_upstream_unavailable(httpx_mock, client):
    httpx_mock.add_response(method="POST", url=COMPLETIONS_URL, status_code=500, json={"error": {"message": "boom"}})
    with pytest.raises(UpstreamUnavailable):
        client.complete([Message.user("hi")])


def test_unconfigured_client(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = OpenAIChatClient(OpenAIConfig(api_key=""))
    assert not client.is_configured
    with pytest.raises(UpstreamUnavailable):
        client.complete([Message.user("hi")])


def test_to_wire_pairs_tool_calls_with_results():
    messages = [
        Message.system("persona"),
        # result evicted, request dropped
        Message(role="assistant", content="", tool_name="get_basket", tool_call_id="old", tool_arguments="{}"),
        # request evicted, result dropped
        Message(role="tool", content="{}", tool_name="get_basket", tool_call_id="older"),
        Message.user("basket?"),
        Message(role="assistant", content="", tool_name="get_basket", tool_call_id="c1", tool_arguments="{}"),
        Message(role="tool", content="{\"empty\": true}", tool_name="get_basket", tool_call_id="c1"),
    ]
    wire = to_wire(messages)
    assert [m["role"] for m in wire] == ["system", "user", "assistant", "tool"]
    assert wire[2]["tool_calls"][0]["function"] == {"name": "get_basket", "arguments": "{}"}
    assert wire[2]["content"] is None
    assert wire[3] == {"role": "tool", "tool_call_id": "c1", "content": "{\"empty\": true}"}
