"""Adapter for backends that speak the OpenAI chat-completions protocol (Doubao, OpenAI, ...)."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, Dict, Optional

import httpx

from ..config import ModelConfig
from .base import (
    ContentGenerator,
    CountTokensRequest,
    EmbedContentRequest,
    EmbedContentResponse,
    GenerateContentConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    LLMUnavailableException,
    Usage,
)
from .credentials import CredentialsManager
from .streaming import StreamDecoder
from .tokens import TokenAccountant
from .tools import apply_tools, declarations_to_wire, resolve_tool_choice
from .translator import ContentTranslator
from .transport import TransportClient, build_headers, resolve_chat_url, resolve_embeddings_url

logger = logging.getLogger(__name__)


class OpenAICompatibleGenerator(ContentGenerator):
    """Canonical interface over an OpenAI-compatible HTTP endpoint."""

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
        self.logger = logger
        self.translator = ContentTranslator(logger=logger)
        self.accountant = accountant or TokenAccountant(logger=logger)

    async def generate_content(self, request: GenerateContentRequest) -> GenerateContentResponse:
        payload = self.build_payload(request, stream=False)
        data = await self._client().post_json(self._chat_url(), payload)
        return self.translator.response_from_wire(
            data,
            extract_thoughts=self._wants_thoughts(request),
            model=payload["model"],
        )

    async def generate_content_stream(
        self, request: GenerateContentRequest
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        payload = self.build_payload(request, stream=True)
        client = self._client()
        decoder = StreamDecoder(
            self.translator,
            extract_thoughts=self._wants_thoughts(request),
            model=payload["model"],
            logger=self.logger,
        )
        async with aclosing(decoder.decode(client.stream_bytes(self._chat_url(), payload))) as partials:
            async for partial in partials:
                yield partial

    async def count_tokens(self, request: CountTokensRequest) -> int:
        probe = None
        if self.config.use_backend_usage and self.config.api_key:

            async def probe() -> Optional[Usage]:
                # Smallest possible output budget; only the prompt figure matters.
                response = await self.generate_content(
                    GenerateContentRequest(
                        contents=request.contents,
                        config=GenerateContentConfig(max_output_tokens=1),
                        model=request.model,
                    )
                )
                return response.usage

        return await self.accountant.count(request.contents, probe)

    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        if not self.config.embedding_model:
            raise LLMUnavailableException(
                f"Embedding model not configured for provider: {self.config.provider.value}"
            )

        payload = {
            "model": request.model or self.config.embedding_model,
            "input": list(request.contents),
        }
        data = await self._client().post_json(resolve_embeddings_url(self.credentials.base_url()), payload)
        return EmbedContentResponse(
            embeddings=[list(item.get("embedding") or []) for item in data.get("data") or []]
        )

    def build_payload(self, request: GenerateContentRequest, stream: bool) -> Dict[str, Any]:
        config = request.config
        model = request.model or self.config.model
        messages = self.translator.to_wire(request.contents, config.system_instruction)
        wire_tools = declarations_to_wire(config.tools)
        messages = apply_tools(messages, wire_tools)

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [message.to_dict() for message in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
            "stream": stream,
        }
        if wire_tools:
            payload["tools"] = wire_tools
            payload["tool_choice"] = resolve_tool_choice(config.tool_choice)
        if config.include_thoughts and self.config.think_support and "thinking" in model:
            payload["include_reasoning"] = True

        self.logger.debug(
            "Built chat payload",
            extra={
                "provider": self.config.provider.value,
                "model": model,
                "stream": stream,
                "message_count": len(messages),
                "tool_count": len(wire_tools),
            },
        )
        return payload

    def _wants_thoughts(self, request: GenerateContentRequest) -> bool:
        return request.config.include_thoughts or self.config.think_support

    def _chat_url(self) -> str:
        return resolve_chat_url(self.credentials.base_url())

    def _client(self) -> TransportClient:
        return TransportClient(
            build_headers(self.credentials.require_api_key()),
            timeout=self.config.timeout,
            transport=self.transport,
            logger=self.logger,
        )
