import asyncio

import httpx
import pytest

from switchboard.models.base import LLMTransportError
from switchboard.models.transport import (
    TransportClient,
    build_headers,
    resolve_chat_url,
    resolve_embeddings_url,
)


@pytest.mark.parametrize(
    "base, expected",
    [
        ("https://api.example.com/v1", "https://api.example.com/v1/chat/completions"),
        ("https://api.example.com/v1/", "https://api.example.com/v1/chat/completions"),
        ("https://api.example.com/v1/chat/completions", "https://api.example.com/v1/chat/completions"),
    ],
)
def test_resolve_chat_url(base, expected):
    assert resolve_chat_url(base) == expected


def test_resolve_embeddings_url():
    assert resolve_embeddings_url("https://api.example.com/v1/") == "https://api.example.com/v1/embeddings"
    assert (
        resolve_embeddings_url("https://api.example.com/v1/chat/completions")
        == "https://api.example.com/v1/embeddings"
    )


def test_headers_carry_bearer_token():
    headers = build_headers("sk-test")
    assert headers["Authorization"] == "Bearer sk-test"
    assert headers["Content-Type"] == "application/json"
    assert headers["User-Agent"].startswith("switchboard/")


def _client(handler):
    return TransportClient(build_headers("sk-test"), transport=httpx.MockTransport(handler))


def test_post_json_returns_body():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"ok": True})

    assert asyncio.run(_client(handler).post_json("https://x.test/v1/chat/completions", {"a": 1})) == {"ok": True}
    assert seen["auth"] == "Bearer sk-test"


def test_post_json_error_status_keeps_body():
    def handler(request):
        return httpx.Response(429, text="slow down")

    with pytest.raises(LLMTransportError) as excinfo:
        asyncio.run(_client(handler).post_json("https://x.test/v1/chat/completions", {}))
    assert excinfo.value.status_code == 429
    assert excinfo.value.body == "slow down"
    assert "429" in str(excinfo.value)


def test_post_json_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMTransportError) as excinfo:
        asyncio.run(_client(handler).post_json("https://x.test/v1/chat/completions", {}))
    assert excinfo.value.status_code is None
    assert "refused" in excinfo.value.body


def test_stream_bytes_connection_error_keeps_diagnostic():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def consume():
        return [chunk async for chunk in _client(handler).stream_bytes("https://x.test/v1/chat/completions", {})]

    with pytest.raises(LLMTransportError) as excinfo:
        asyncio.run(consume())
    assert excinfo.value.status_code is None
    assert excinfo.value.body == "refused"


def test_stream_bytes_error_status():
    def handler(request):
        return httpx.Response(500, text="boom")

    async def consume():
        return [chunk async for chunk in _client(handler).stream_bytes("https://x.test/v1/chat/completions", {})]

    with pytest.raises(LLMTransportError) as excinfo:
        asyncio.run(consume())
    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "boom"


def test_stream_bytes_yields_body():
    def handler(request):
        return httpx.Response(200, content=b"data: [DONE]\n\n")

    async def consume():
        return b"".join([chunk async for chunk in _client(handler).stream_bytes("https://x.test/v1/c", {})])

    assert asyncio.run(consume()) == b"data: [DONE]\n\n"
