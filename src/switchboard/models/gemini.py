"""Google Gemini REST adapter (generateContent / streamGenerateContent)."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Mapping, Optional

import httpx

from .. import __version__
from ..config import ModelConfig
from .base import (
    CanonicalPart,
    Content,
    ContentGenerator,
    CountTokensRequest,
    EmbedContentRequest,
    EmbedContentResponse,
    FinishReason,
    FunctionCallPart,
    FunctionResponsePart,
    GenerateContentRequest,
    GenerateContentResponse,
    LLMTransportError,
    LLMUnavailableException,
    Role,
    TextPart,
    ThinkingPart,
    Usage,
)
from .credentials import CredentialsManager
from .streaming import SSELineBuffer, sse_data
from .tokens import TokenAccountant
from .transport import TransportClient

logger = logging.getLogger(__name__)

_TOOL_MODES = {"auto": "AUTO", "required": "ANY", "any": "ANY", "none": "NONE"}


class GeminiGenerator(ContentGenerator):
    """Adapter for the Gemini generateContent API; the canonical model maps onto it directly."""

    def __init__(
        self,
        config: ModelConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        accountant: Optional[TokenAccountant] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.config = config
        self.credentials = CredentialsManager(config)
        self.transport = transport
        self.accountant = accountant or TokenAccountant(logger=logger)
        self.logger = logger

    async def generate_content(self, request: GenerateContentRequest) -> GenerateContentResponse:
        model = request.model or self.config.model
        data = await self._client().post_json(self._url(model, "generateContent"), self._build_payload(request))
        return self._response_from_wire(data, model)

    async def generate_content_stream(
        self, request: GenerateContentRequest
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        model = request.model or self.config.model
        chunks = self._client().stream_bytes(
            self._url(model, "streamGenerateContent") + "?alt=sse", self._build_payload(request)
        )
        async with aclosing(self._decode_stream(chunks, model)) as partials:
            async for partial in partials:
                yield partial

    async def count_tokens(self, request: CountTokensRequest) -> int:
        model = request.model or self.config.model
        probe = None
        if self.config.api_key:

            async def probe() -> Optional[Usage]:
                data = await self._client().post_json(
                    self._url(model, "countTokens"),
                    {"contents": self._contents_to_wire(request.contents)},
                )
                total = int(data.get("totalTokens") or 0)
                return Usage(prompt_tokens=total, total_tokens=total)

        return await self.accountant.count(request.contents, probe)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        if not self.config.embedding_model:
            raise LLMUnavailableException(
                f"Embedding model not configured for provider: {self.config.provider.value}"
            )
        model = request.model or self.config.embedding_model
        payload = {
            "requests": [
                {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
                for text in request.contents
            ]
        }
        data = await self._client().post_json(self._url(model, "batchEmbedContents"), payload)
        return EmbedContentResponse(
            embeddings=[list(item.get("values") or []) for item in data.get("embeddings") or []]
        )

    # ------------------------------------------------------------------ #
    # canonical -> wire
    # ------------------------------------------------------------------ #
    def _build_payload(self, request: GenerateContentRequest) -> Dict[str, Any]:
        config = request.config
        system_texts: List[str] = [config.system_instruction] if config.system_instruction else []
        conversation: List[Content] = []
        for content in request.contents:
            if Role(content.role) is Role.SYSTEM:
                system_texts.extend(p.text for p in content.parts if isinstance(p, TextPart))
            else:
                conversation.append(content)

        generation_config: Dict[str, Any] = {
            "temperature": config.temperature,
            "maxOutputTokens": config.max_output_tokens,
        }
        if config.include_thoughts:
            generation_config["thinkingConfig"] = {"includeThoughts": True}

        payload: Dict[str, Any] = {
            "contents": self._contents_to_wire(conversation),
            "generationConfig": generation_config,
        }
        if system_texts:
            payload["systemInstruction"] = {"parts": [{"text": "\n".join(system_texts)}]}

        declarations = [
            {
                "name": declaration.name or "",
                "description": declaration.description or "",
                "parameters": dict(declaration.parameters or {}),
            }
            for tool in config.tools
            for declaration in tool.function_declarations
        ]
        if declarations:
            payload["tools"] = [{"functionDeclarations": declarations}]
            payload["toolConfig"] = {"functionCallingConfig": self._tool_calling_config(config.tool_choice)}
        return payload

    def _contents_to_wire(self, contents: Any) -> List[Dict[str, Any]]:
        wire: List[Dict[str, Any]] = []
        for content in contents:
            parts: List[Dict[str, Any]] = []
            for part in content.parts:
                if isinstance(part, TextPart):
                    parts.append({"text": part.text})
                elif isinstance(part, FunctionCallPart):
                    parts.append({"functionCall": {"name": part.name, "args": dict(part.args or {})}})
                elif isinstance(part, FunctionResponsePart):
                    response = part.response if isinstance(part.response, dict) else {"result": part.response}
                    parts.append({"functionResponse": {"name": part.name, "response": response}})
            if parts:
                role = "model" if Role(content.role) is Role.MODEL else "user"
                wire.append({"role": role, "parts": parts})
        return wire

    def _tool_calling_config(self, choice: Any) -> Dict[str, Any]:
        if choice is None:
            return {"mode": "AUTO"}
        if isinstance(choice, str):
            return {"mode": _TOOL_MODES.get(choice.lower(), "AUTO")}
        name = choice.get("name") or (choice.get("function") or {}).get("name")
        return {"mode": "ANY", "allowedFunctionNames": [name]} if name else {"mode": "ANY"}

    # ------------------------------------------------------------------ #
    # wire -> canonical
    # ------------------------------------------------------------------ #
    def _response_from_wire(self, data: Mapping[str, Any], model: str) -> GenerateContentResponse:
        candidates = data.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        parts = self._parts_from_wire((candidate.get("content") or {}).get("parts") or [])
        has_calls = any(isinstance(part, FunctionCallPart) for part in parts)
        finish = candidate.get("finishReason")
        return GenerateContentResponse(
            parts=parts,
            finish_reason=FinishReason.STOP if has_calls or finish == "STOP" else FinishReason.OTHER,
            usage=self._parse_usage(data.get("usageMetadata")),
            model=data.get("modelVersion") or model,
        )

    def _parts_from_wire(self, raw_parts: List[Mapping[str, Any]]) -> List[CanonicalPart]:
        parts: List[CanonicalPart] = []
        for raw in raw_parts:
            if not isinstance(raw, dict):
                continue
            if "functionCall" in raw:
                call = raw["functionCall"] or {}
                args = call.get("args")
                parts.append(
                    FunctionCallPart(name=call.get("name") or "", args=args if isinstance(args, dict) else {}, id=call.get("id"))
                )
            elif raw.get("text"):
                parts.append(ThinkingPart(raw["text"]) if raw.get("thought") else TextPart(raw["text"]))
        return parts

    def _parse_usage(self, payload: Optional[Mapping[str, Any]]) -> Optional[Usage]:
        if not payload:
            return None
        prompt = int(payload.get("promptTokenCount") or 0)
        completion = int(payload.get("candidatesTokenCount") or 0)
        total = int(payload.get("totalTokenCount") or prompt + completion)
        return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    async def _decode_stream(
        self, chunks: AsyncIterator[bytes], model: str
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        buffer = SSELineBuffer()
        try:
            async for chunk in chunks:
                for line in buffer.feed(chunk):
                    partial = self._partial_from_line(line, model)
                    if partial is not None:
                        yield partial
            for line in buffer.flush():
                partial = self._partial_from_line(line, model)
                if partial is not None:
                    yield partial
        finally:
            await chunks.aclose()

    def _partial_from_line(self, line: str, model: str) -> Optional[GenerateContentResponse]:
        data = sse_data(line)
        if not data or data == "[DONE]":
            return None
        try:
            payload = json.loads(data)
        except ValueError:
            self.logger.warning("Skipping malformed stream record", extra={"record": data[:200]})
            return None
        if not isinstance(payload, dict):
            return None
        if "error" in payload:
            error = payload["error"] or {}
            raise LLMTransportError(
                f"Gemini stream error: {error.get('message', 'unknown error')}",
                status_code=error.get("code"),
                body=data,
            )
        partial = self._response_from_wire(payload, model)
        partial.finish_reason = FinishReason.STOP
        return partial

    # ------------------------------------------------------------------ #
    # transport
    # ------------------------------------------------------------------ #
    def _url(self, model: str, method: str) -> str:
        return f"{self.credentials.base_url().rstrip('/')}/models/{model}:{method}"

    def _client(self) -> TransportClient:
        headers = {
            "x-goog-api-key": self.credentials.require_api_key(),
            "Content-Type": "application/json",
            "User-Agent": f"switchboard/{__version__}",
        }
        return TransportClient(headers, timeout=self.config.timeout, transport=self.transport, logger=self.logger)
