"""Pick the adapter for a resolved backend configuration."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import ModelConfig, Provider
from .base import ContentGenerator, LLMConfigurationError
from .credentials import CredentialsManager
from .gemini import GeminiGenerator
from .openai_compatible import OpenAICompatibleGenerator

logger = logging.getLogger(__name__)


def create_content_generator(
    config: ModelConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ContentGenerator:
    if config.provider is Provider.GEMINI:
        return GeminiGenerator(config, transport=transport)

    message = CredentialsManager(config).validate()
    if message is not None:
        raise LLMConfigurationError(message)

    logger.debug(
        "Using OpenAI-compatible adapter",
        extra={"provider": config.provider.value, "model": config.model, "base_url": config.base_url},
    )
    return OpenAICompatibleGenerator(config, transport=transport)
