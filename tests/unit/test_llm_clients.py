"""
Unit tests for the HTTP LLM clients using httpx.MockTransport.
"""
import json

import httpx
import pytest

from guardian.ai.clients import AnthropicClient, OllamaClient, create_client
from guardian.base.config import LLMConfig
from guardian.errors import ErrorCode, GuardianError


def _transport(handler):
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_anthropic_request_shape_and_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "content": [
                {"type": "text", "text": '{"issues": []'},
                {"type": "text", "text": ', "confidence": 0.9}'},
            ]
        })

    client = AnthropicClient(api_key="sk-test", model="m1", transport=_transport(handler))
    text = await client.complete("system text", "user text", timeout=2.0)

    assert text == '{"issues": [], "confidence": 0.9}'
    assert seen["url"] == "https://api.anthropic.com/v1/messages"
    assert seen["headers"]["x-api-key"] == "sk-test"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["system"] == "system text"
    assert seen["body"]["messages"] == [{"role": "user", "content": "user text"}]


@pytest.mark.asyncio
async def test_ollama_generate():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/generate"
        body = json.loads(request.content)
        assert body["stream"] is False
        assert body["model"] == "llama3"
        return httpx.Response(200, json={"response": '{"issues": []}'})

    client = OllamaClient(base_url="http://ollama.local:11434/", transport=_transport(handler))
    assert await client.complete("s", "p", timeout=2.0) == '{"issues": []}'


@pytest.mark.asyncio
@pytest.mark.parametrize("response,code", [
    (httpx.Response(429, headers={"retry-after": "30"}), ErrorCode.AI_RATE_LIMIT_EXCEEDED),
    (httpx.Response(500, text="upstream down"), ErrorCode.AI_INVALID_RESPONSE),
    (httpx.Response(200, text="<html>"), ErrorCode.AI_JSON_PARSE_ERROR),
    (httpx.Response(200, json={"response": ""}), ErrorCode.AI_INVALID_RESPONSE),
])
async def test_ollama_error_mapping(response, code):
    client = OllamaClient(transport=_transport(lambda request: response))
    with pytest.raises(GuardianError) as exc_info:
        await client.complete("s", "p", timeout=2.0)
    assert exc_info.value.code == code


@pytest.mark.asyncio
async def test_transport_errors():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    def slow(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GuardianError) as offline:
        await OllamaClient(transport=_transport(refuse)).complete("s", "p", timeout=1.0)
    assert offline.value.code == ErrorCode.AI_OFFLINE

    with pytest.raises(GuardianError) as timed_out:
        await OllamaClient(transport=_transport(slow)).complete("s", "p", timeout=1.0)
    assert timed_out.value.code == ErrorCode.AI_TIMEOUT


def test_create_client():
    assert create_client(LLMConfig(provider="anthropic", api_key="")) is None
    assert create_client(LLMConfig(provider="none")) is None
    assert create_client(LLMConfig(provider="ollama", enabled=False)) is None
    assert isinstance(create_client(LLMConfig(provider="anthropic", api_key="k")), AnthropicClient)
    assert isinstance(create_client(LLMConfig(provider="ollama", model="mistral")), OllamaClient)
    assert create_client(LLMConfig(provider="mystery")) is None
