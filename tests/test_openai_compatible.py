import asyncio
import json

import httpx
import pytest

from switchboard.config import ModelConfig, Provider
from switchboard.models.base import (
    Content,
    CountTokensRequest,
    EmbedContentRequest,
    FunctionCallPart,
    FunctionDeclaration,
    GenerateContentConfig,
    GenerateContentRequest,
    LLMConfigurationError,
    LLMTransportError,
    LLMUnavailableException,
    Role,
    TextPart,
    ThinkingPart,
    Tool,
)
from switchboard.models.openai_compatible import OpenAICompatibleGenerator


def _config(**overrides):
    values = dict(
        provider=Provider.OPENAI,
        model="gpt-test",
        api_key="sk-test",
        base_url="https://api.example.com/v1",
        embedding_model="embed-test",
    )
    values.update(overrides)
    return ModelConfig(**values)


def _generator(handler, **overrides):
    return OpenAICompatibleGenerator(_config(**overrides), transport=httpx.MockTransport(handler))


def _completion(message, finish_reason="stop", usage=None):
    body = {"model": "gpt-test", "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}]}
    if usage:
        body["usage"] = usage
    return httpx.Response(200, json=body)


def _request(text="hello", **config):
    return GenerateContentRequest(
        contents=(Content.from_text(Role.USER, text),),
        config=GenerateContentConfig(**config),
    )


def test_generate_content_minimal_payload():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return _completion({"role": "assistant", "content": "hi there"})

    response = asyncio.run(_generator(handler).generate_content(_request()))

    assert captured["url"] == "https://api.example.com/v1/chat/completions"
    body = captured["body"]
    assert body["messages"] == [{"role": "user", "content": "hello"}]
    assert body["stream"] is False
    assert body["model"] == "gpt-test"
    assert "tools" not in body
    assert response.parts == [TextPart("hi there")]


def test_generate_content_with_tools():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return _completion(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {"id": "c1", "type": "function", "function": {"name": "get_weather", "arguments": '{"city": "Oslo"}'}}
                ],
            },
            finish_reason="tool_calls",
        )

    weather = FunctionDeclaration(name="get_weather", parameters={"type": "object"})
    response = asyncio.run(_generator(handler).generate_content(_request(tools=(Tool((weather,)),))))

    body = captured["body"]
    assert body["tool_choice"] == "auto"
    assert body["tools"][0]["function"]["name"] == "get_weather"
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][-1] == {"role": "user", "content": "hello"}
    assert response.function_calls == [FunctionCallPart(name="get_weather", args={"city": "Oslo"}, id="c1")]
    assert response.finish_reason.value == "stop"


def test_thinking_extracted_for_think_capable_backend():
    def handler(request):
        return _completion({"content": "<thinking>plan</thinking>answer"})

    response = asyncio.run(_generator(handler, think_support=True).generate_content(_request()))
    assert response.parts == [ThinkingPart("plan"), TextPart("answer")]


def test_include_reasoning_flag_only_for_thinking_models():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return _completion({"content": "ok"})

    generator = _generator(handler, think_support=True, model="Doubao-Seed-1.6-thinking")
    asyncio.run(generator.generate_content(_request(include_thoughts=True)))
    asyncio.run(_generator(handler, think_support=True).generate_content(_request(include_thoughts=True)))
    assert bodies[0]["include_reasoning"] is True
    assert "include_reasoning" not in bodies[1]


def test_http_error_is_surfaced():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    with pytest.raises(LLMTransportError) as excinfo:
        asyncio.run(_generator(handler).generate_content(_request()))
    assert excinfo.value.status_code == 401
    assert "bad key" in excinfo.value.body


def test_missing_api_key_raises_configuration_error():
    def handler(request):  # pragma: no cover - never reached
        raise AssertionError("request should not be sent")

    with pytest.raises(LLMConfigurationError):
        asyncio.run(_generator(handler, api_key="").generate_content(_request()))


def test_generate_content_stream():
    captured = {}
    events = [
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
    ]
    sse = "".join(f"data: {json.dumps(event)}\n\n" for event in events) + "data: [DONE]\n\n"

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=sse.encode(), headers={"content-type": "text/event-stream"})

    async def collect():
        return [partial async for partial in _generator(handler).generate_content_stream(_request())]

    partials = asyncio.run(collect())
    assert captured["body"]["stream"] is True
    assert "".join(p.text for p in partials) == "Hello"


def test_count_tokens_uses_heuristic_by_default():
    def handler(request):  # pragma: no cover - never reached
        raise AssertionError("no request expected")

    request = CountTokensRequest(contents=(Content.from_text(Role.USER, "12345678"),))
    assert asyncio.run(_generator(handler).count_tokens(request)) == 2


def test_count_tokens_backend_usage_probe():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return _completion({"content": "x"}, usage={"prompt_tokens": 11, "completion_tokens": 1, "total_tokens": 12})

    request = CountTokensRequest(contents=(Content.from_text(Role.USER, "hi"),))
    assert asyncio.run(_generator(handler, use_backend_usage=True).count_tokens(request)) == 11
    assert captured["body"]["max_tokens"] == 1


def test_embed_content():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}, {"embedding": [0.3, 0.4]}]})

    response = asyncio.run(_generator(handler).embed_content(EmbedContentRequest(contents=("a", "b"))))
    assert captured["url"] == "https://api.example.com/v1/embeddings"
    assert captured["body"] == {"model": "embed-test", "input": ["a", "b"]}
    assert response.embeddings == [[0.1, 0.2], [0.3, 0.4]]


def test_embed_content_not_configured():
    def handler(request):  # pragma: no cover - never reached
        raise AssertionError("no request expected")

    generator = _generator(handler, provider=Provider.ANTHROPIC, embedding_model=None)
    with pytest.raises(LLMUnavailableException) as excinfo:
        asyncio.run(generator.embed_content(EmbedContentRequest(contents=("a",))))
    assert "anthropic" in str(excinfo.value)
