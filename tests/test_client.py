import json

import httpx
import pytest

from planner_bot.ai.client import OpenRouterClient, to_anthropic_messages, to_anthropic_tool
from planner_bot.config import OpenRouterConfig
from planner_bot.core.errors import ExternalServiceError


def make_client(handler):
    config = OpenRouterConfig(api_key="sk-test", base_url="https://openrouter.test/api/v1")
    return OpenRouterClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_text_response_and_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["title"] = request.headers["X-Title"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": "Ciao!"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 42, "completion_tokens": 7},
            },
        )

    client = make_client(handler)
    tools = [{"type": "function", "function": {"name": "t", "description": "d", "parameters": {"type": "object"}}}]
    response = await client.chat([{"role": "user", "content": "hi"}], model="m", max_tokens=100, tools=tools)
    await client.close()

    assert seen["url"] == "https://openrouter.test/api/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["title"] == "Plannerinator AI Assistant"
    assert seen["body"]["model"] == "m"
    assert seen["body"]["max_tokens"] == 100
    assert seen["body"]["tools"] == tools
    assert response.text == "Ciao!"
    assert response.input_tokens == 42
    assert response.output_tokens == 7
    assert not response.wants_tools


@pytest.mark.asyncio
async def test_tool_call_response():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "choices": [
                    {
                        "message": {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_1",
                                    "type": "function",
                                    "function": {"name": "create_task", "arguments": '{"tasks": []}'},
                                }
                            ],
                        },
                        "finish_reason": "tool_calls",
                    }
                ],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5},
            },
        )

    client = make_client(handler)
    response = await client.chat([{"role": "user", "content": "x"}], model="m")
    assert response.wants_tools
    assert response.text == ""
    call = response.tool_calls[0]
    assert (call.id, call.name) == ("call_1", "create_task")
    assert call.parse_arguments() == {"tasks": []}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (400, False), (401, False)])
async def test_http_errors_map_to_external_service_error(status, retryable):
    client = make_client(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(ExternalServiceError) as exc:
        await client.chat([{"role": "user", "content": "x"}], model="m")
    assert exc.value.status == status
    assert exc.value.retryable is retryable


@pytest.mark.asyncio
async def test_transport_failure_is_retryable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(ExternalServiceError) as exc:
        await client.chat([{"role": "user", "content": "x"}], model="m")
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_malformed_body():
    client = make_client(lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(ExternalServiceError):
        await client.chat([{"role": "user", "content": "x"}], model="m")


def test_anthropic_message_conversion():
    messages = [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "crea due task"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {"id": "a", "type": "function", "function": {"name": "create_task", "arguments": '{"x": 1}'}},
                {"id": "b", "type": "function", "function": {"name": "create_note", "arguments": "{}"}},
            ],
        },
        {"role": "tool", "tool_call_id": "a", "content": '{"success": true}'},
        {"role": "tool", "tool_call_id": "b", "content": '{"success": false}'},
    ]
    system, converted = to_anthropic_messages(messages)

    assert system == "sys"
    assert [m["role"] for m in converted] == ["user", "assistant", "user"]
    assert [b["type"] for b in converted[1]["content"]] == ["tool_use", "tool_use"]
    assert converted[1]["content"][0]["input"] == {"x": 1}
    assert [b["tool_use_id"] for b in converted[2]["content"]] == ["a", "b"]


def test_anthropic_tool_conversion():
    tool = {"type": "function", "function": {"name": "t", "description": "d", "parameters": {"type": "object"}}}
    assert to_anthropic_tool(tool) == {"name": "t", "description": "d", "input_schema": {"type": "object"}}
