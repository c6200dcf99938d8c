"""Server-sent-event decoding for streamed chat completions."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Mapping, Optional

from .base import (
    CanonicalPart,
    FinishReason,
    FunctionCallPart,
    GenerateContentResponse,
    TextPart,
    ThinkingPart,
)
from .thinking import Channel, Emission, StreamingThinkingExtractor
from .translator import ContentTranslator, parse_usage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class SSELineBuffer:
    """Reassembles lines from arbitrarily split byte chunks.

    The decoder works on raw transport bytes rather than ``aiter_lines()`` so
    that the same carry-over logic serves any byte source, including a
    multi-byte character split across two reads.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""

    def feed(self, chunk: bytes) -> List[str]:
        text = self._carry + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._carry = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        text = self._carry + self._decoder.decode(b"", final=True)
        self._carry = ""
        return [text.rstrip("\r")] if text else []


def sse_data(line: str) -> Optional[str]:
    """Return the payload of a ``data:`` record, or None for any other line."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()


class StreamDecoder:
    """Turns one chat-completions event stream into canonical partial responses.

    An instance serves exactly one streamed call: it owns the thinking state
    machine and the tool-call accumulator for that call.
    """

    def __init__(
        self,
        translator: Optional[ContentTranslator] = None,
        extract_thoughts: bool = True,
        model: Optional[str] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.translator = translator or ContentTranslator(logger=logger)
        self.extract_thoughts = extract_thoughts
        self.model = model
        self.logger = logger
        self.extractor = StreamingThinkingExtractor(logger=logger)
        self._tool_calls: Dict[int, Dict[str, Any]] = {}

    async def decode(self, chunks: AsyncIterator[bytes]) -> AsyncGenerator[GenerateContentResponse, None]:
        buffer = SSELineBuffer()
        ready: List[GenerateContentResponse] = []
        try:
            async for chunk in chunks:
                done = self._consume_lines(buffer.feed(chunk), ready)
                for response in ready:
                    yield response
                ready.clear()
                if done:
                    break
            else:
                self._consume_lines(buffer.flush(), ready)

            ready.extend(self._finish())
            for response in ready:
                yield response
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

    def _consume_lines(self, lines: List[str], ready: List[GenerateContentResponse]) -> bool:
        """Translate complete lines into ``ready``; True once the sentinel is seen."""
        for line in lines:
            data = sse_data(line)
            if not data:
                continue
            if data == DONE_SENTINEL:
                return True
            try:
                payload = json.loads(data)
            except ValueError:
                self.logger.warning("Skipping malformed stream record", extra={"record": data[:200]})
                continue
            if not isinstance(payload, dict):
                self.logger.warning("Skipping non-object stream record", extra={"record": data[:200]})
                continue
            ready.extend(self._handle_payload(payload))
        return False

    def _handle_payload(self, payload: Mapping[str, Any]) -> List[GenerateContentResponse]:
        responses: List[GenerateContentResponse] = []
        if payload.get("model"):
            self.model = payload["model"]

        choices = payload.get("choices") or []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}

            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            if self.extract_thoughts and isinstance(reasoning, str) and reasoning:
                responses.append(self._partial([ThinkingPart(reasoning)]))

            content = delta.get("content")
            if isinstance(content, str) and content:
                if self.extract_thoughts:
                    responses.extend(self._from_emissions(self.extractor.feed(content)))
                else:
                    responses.append(self._partial([TextPart(content)]))

            for call in delta.get("tool_calls") or []:
                self._accumulate_tool_call(call)
            if choice.get("finish_reason") and self._tool_calls:
                responses.append(self._flush_tool_calls())

        usage = parse_usage(payload.get("usage"))
        if usage is not None:
            partial = self._partial([])
            partial.usage = usage
            responses.append(partial)
        return responses

    def _accumulate_tool_call(self, call: Mapping[str, Any]) -> None:
        """Merge one streamed tool-call fragment into the entry for its index."""
        index = call.get("index")
        if not isinstance(index, int):
            index = len(self._tool_calls)
        entry = self._tool_calls.setdefault(index, {"id": None, "name": "", "arguments": ""})
        if call.get("id"):
            entry["id"] = call["id"]
        function = call.get("function") or {}
        if function.get("name") and not entry["name"]:
            entry["name"] = function["name"]
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            entry["arguments"] += arguments

    def _flush_tool_calls(self) -> GenerateContentResponse:
        """Emit every accumulated call as one partial and reset the accumulator."""
        parts: List[CanonicalPart] = []
        for index in sorted(self._tool_calls):
            entry = self._tool_calls[index]
            parts.append(
                FunctionCallPart(
                    name=entry["name"],
                    args=self.translator.parse_arguments(entry["arguments"], entry["name"]),
                    id=entry["id"],
                )
            )
        self._tool_calls.clear()
        return self._partial(parts)

    def _finish(self) -> List[GenerateContentResponse]:
        responses = self._from_emissions(self.extractor.finish())
        if self._tool_calls:
            responses.append(self._flush_tool_calls())
        return responses

    def _from_emissions(self, emissions: List[Emission]) -> List[GenerateContentResponse]:
        responses = []
        for emission in emissions:
            if emission.channel is Channel.THINKING:
                responses.append(self._partial([ThinkingPart(emission.text)]))
            else:
                responses.append(self._partial([TextPart(emission.text)]))
        return responses

    def _partial(self, parts: List[CanonicalPart]) -> GenerateContentResponse:
        # Partials never claim a terminal state other than "more may follow".
        return GenerateContentResponse(parts=parts, finish_reason=FinishReason.STOP, model=self.model)
