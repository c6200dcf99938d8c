"""Translation between canonical contents and OpenAI-style chat messages."""

from __future__ import annotations

import json
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional

from .base import (
    CanonicalPart,
    Content,
    FinishReason,
    FunctionCallPart,
    FunctionResponsePart,
    GenerateContentResponse,
    Role,
    TextPart,
    ThinkingPart,
    Usage,
)
from .thinking import extract_thinking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WireToolCall:
    id: str
    name: str
    arguments_json: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }


@dataclass(frozen=True)
class WireMessage:
    """One chat-completions message; ``content`` is None for a pure tool invocation."""

    role: str
    content: Optional[str]
    tool_calls: List[WireToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


def map_finish_reason(wire_reason: Optional[str], has_tool_calls: bool = False) -> FinishReason:
    """Map a wire finish reason; a tool-call turn always counts as STOP."""
    if has_tool_calls or wire_reason == "stop":
        return FinishReason.STOP
    return FinishReason.OTHER


def parse_usage(payload: Optional[Mapping[str, Any]]) -> Optional[Usage]:
    """Read a chat-completions ``usage`` block; None when the backend sent none."""
    if not payload:
        return None
    prompt = int(payload.get("prompt_tokens") or 0)
    completion = int(payload.get("completion_tokens") or 0)
    total = int(payload.get("total_tokens") or prompt + completion)
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def serialize_response(response: Any) -> str:
    """Tool message content: strings as-is, anything else as JSON."""
    if isinstance(response, str):
        return response
    return json.dumps(response, ensure_ascii=False, default=str)


class ContentTranslator:
    """Converts canonical contents to wire messages and wire choices back to parts."""

    def __init__(self, logger: logging.Logger = logger) -> None:
        self.logger = logger

    # ------------------------------------------------------------------ #
    # canonical -> wire
    # ------------------------------------------------------------------ #
    def to_wire(
        self, contents: Iterable[Content], system_instruction: Optional[str] = None
    ) -> List[WireMessage]:
        """Canonical contents to chat messages; one assistant message per function call."""
        messages: List[WireMessage] = []
        if system_instruction:
            messages.append(WireMessage(role="system", content=system_instruction))

        # Calls waiting for their response, per function name, in call order.
        open_calls: Dict[str, Deque[str]] = defaultdict(deque)
        counter = 0

        def next_call_id() -> str:
            nonlocal counter
            counter += 1
            return f"call_{counter}"

        for content in contents:
            canonical_role = Role(content.role)
            role = "assistant" if canonical_role is Role.MODEL else canonical_role.value
            texts: List[str] = []

            def flush() -> None:
                text = "\n".join(texts)
                texts.clear()
                if text:
                    messages.append(WireMessage(role=role, content=text))

            for part in content.parts:
                if isinstance(part, TextPart):
                    texts.append(part.text)
                elif isinstance(part, FunctionCallPart):
                    flush()
                    call_id = part.id or next_call_id()
                    open_calls[part.name].append(call_id)
                    arguments = json.dumps(part.args or {}, ensure_ascii=False, default=str)
                    messages.append(
                        WireMessage(
                            role="assistant",
                            content=None,
                            tool_calls=[WireToolCall(id=call_id, name=part.name, arguments_json=arguments)],
                        )
                    )
                elif isinstance(part, FunctionResponsePart):
                    flush()
                    pending = open_calls.get(part.name)
                    if part.id:
                        call_id = part.id
                        if pending and call_id in pending:
                            pending.remove(call_id)
                    elif pending:
                        call_id = pending.popleft()
                    else:
                        call_id = next_call_id()
                    messages.append(
                        WireMessage(
                            role="tool",
                            content=serialize_response(part.response),
                            tool_call_id=call_id,
                        )
                    )
                # Thinking and provider-specific parts have no wire form.
            flush()
        return messages

    # ------------------------------------------------------------------ #
    # wire -> canonical
    # ------------------------------------------------------------------ #
    def from_wire(self, choice: Mapping[str, Any], extract_thoughts: bool = False) -> List[CanonicalPart]:
        """Tool calls when present, otherwise thinking (optional) followed by answer text."""
        message = choice.get("message") or {}
        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            return [self._function_call_from_wire(call) for call in tool_calls]

        text = message.get("content") or ""
        if not extract_thoughts:
            return [TextPart(text)] if text else []

        reasoning = message.get("reasoning_content") or message.get("reasoning")
        thinking, answer = extract_thinking(text, reasoning if isinstance(reasoning, str) else None)
        parts: List[CanonicalPart] = []
        if thinking:
            parts.append(ThinkingPart(thinking))
        if answer:
            parts.append(TextPart(answer))
        return parts

    def response_from_wire(
        self, data: Mapping[str, Any], extract_thoughts: bool = False, model: Optional[str] = None
    ) -> GenerateContentResponse:
        choices = data.get("choices") or []
        choice = choices[0] if choices else {}
        parts = self.from_wire(choice, extract_thoughts=extract_thoughts)
        has_calls = any(isinstance(part, FunctionCallPart) for part in parts)
        return GenerateContentResponse(
            parts=parts,
            finish_reason=map_finish_reason(choice.get("finish_reason"), has_calls),
            usage=parse_usage(data.get("usage")),
            model=data.get("model") or model,
        )

    def parse_arguments(self, raw: Any, name: str = "") -> Dict[str, Any]:
        """Decode tool-call arguments; anything unparseable becomes an empty map."""
        if isinstance(raw, dict):
            return raw
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.debug("Unparseable arguments for tool call %r", name)
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _function_call_from_wire(self, call: Mapping[str, Any]) -> FunctionCallPart:
        function = call.get("function") or {}
        name = function.get("name") or ""
        return FunctionCallPart(
            name=name,
            args=self.parse_arguments(function.get("arguments"), name),
            id=call.get("id") or None,
        )
