import asyncio
import json
import logging

from switchboard.models.base import FunctionCallPart, TextPart, ThinkingPart
from switchboard.models.streaming import SSELineBuffer, StreamDecoder, sse_data


async def _chunks(items):
    for item in items:
        yield item


def _decode(chunks, **kwargs):
    async def collect():
        decoder = StreamDecoder(**kwargs)
        return [partial async for partial in decoder.decode(_chunks(chunks))]

    return asyncio.run(collect())


def _event(delta, finish_reason=None, **extra):
    payload = {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}], **extra}
    return f"data: {json.dumps(payload)}\n\n".encode()


def _text(partials):
    return "".join(p.text for p in partials)


def test_line_buffer_handles_split_lines_and_multibyte():
    buffer = SSELineBuffer()
    encoded = "data: 你好\n".encode()
    lines = buffer.feed(encoded[:8]) + buffer.feed(encoded[8:])
    assert lines == ["data: 你好"]
    assert buffer.feed(b"data: tail") == []
    assert buffer.flush() == ["data: tail"]


def test_sse_data_ignores_other_fields():
    assert sse_data("data: {}") == "{}"
    assert sse_data(": keep-alive") is None
    assert sse_data("event: message") is None


def test_plain_text_stream():
    stream = _event({"content": "Hel"}) + _event({"content": "lo"}) + b"data: [DONE]\n\n"
    partials = _decode([stream[:13], stream[13:40], stream[40:]], extract_thoughts=False)
    assert _text(partials) == "Hello"
    assert all(isinstance(part, TextPart) for p in partials for part in p.parts)


def test_malformed_record_is_skipped(caplog):
    chunks = [_event({"content": "a"}), b"data: {not json}\n\n", _event({"content": "b"}), b"data: [DONE]\n\n"]
    with caplog.at_level(logging.WARNING, logger="switchboard.models.streaming"):
        partials = _decode(chunks, extract_thoughts=False)
    assert _text(partials) == "ab"
    assert "malformed" in caplog.text


def test_records_after_done_are_ignored():
    chunks = [_event({"content": "kept"}) + b"data: [DONE]\n\n" + _event({"content": "dropped"})]
    assert _text(_decode(chunks, extract_thoughts=False)) == "kept"


def test_stream_without_done_still_flushes_final_line():
    payload = {"choices": [{"delta": {"content": "last"}}]}
    chunks = [f"data: {json.dumps(payload)}".encode()]
    assert _text(_decode(chunks, extract_thoughts=False)) == "last"


def test_inline_thinking_is_routed_to_thinking_parts():
    chunks = [
        _event({"content": "Let me <thi"}),
        _event({"content": "nking>rea"}),
        _event({"content": "son</thinking> done"}),
        b"data: [DONE]\n\n",
    ]
    partials = _decode(chunks)
    assert _text(partials) == "Let me  done"
    thinking = [part for p in partials for part in p.parts if isinstance(part, ThinkingPart)]
    assert thinking == [ThinkingPart("reason")]


def test_reasoning_content_delta():
    chunks = [_event({"reasoning_content": "think"}), _event({"content": "answer"}), b"data: [DONE]\n\n"]
    partials = _decode(chunks)
    assert partials[0].parts == [ThinkingPart("think")]
    assert _text(partials) == "answer"


def test_tool_call_deltas_are_accumulated():
    chunks = [
        _event({"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "lookup", "arguments": '{"q":'}}]}),
        _event({"tool_calls": [{"index": 0, "function": {"arguments": ' "x"}'}}]}),
        _event({}, finish_reason="tool_calls"),
        b"data: [DONE]\n\n",
    ]
    partials = _decode(chunks)
    calls = [part for p in partials for part in p.parts if isinstance(part, FunctionCallPart)]
    assert calls == [FunctionCallPart(name="lookup", args={"q": "x"}, id="c1")]


def test_usage_only_record_yields_usage_partial():
    usage = {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}}
    chunks = [_event({"content": "x"}), f"data: {json.dumps(usage)}\n\n".encode(), b"data: [DONE]\n\n"]
    partials = _decode(chunks, extract_thoughts=False)
    assert partials[-1].parts == []
    assert partials[-1].usage.total_tokens == 7


def test_source_is_closed_when_consumer_stops_early():
    closed = []

    async def source():
        try:
            for _ in range(10):
                yield _event({"content": "x"})
        finally:
            closed.append(True)

    async def consume_one():
        decoder = StreamDecoder(extract_thoughts=False)
        stream = decoder.decode(source())
        first = await stream.__anext__()
        await stream.aclose()
        return first

    first = asyncio.run(consume_one())
    assert first.text == "x"
    assert closed == [True]
