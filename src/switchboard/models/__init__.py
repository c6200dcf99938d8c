"""Content generators and the translation layer behind them."""

from .base import (
    Content,
    ContentGenerator,
    CountTokensRequest,
    EmbedContentRequest,
    EmbedContentResponse,
    FinishReason,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    GenerateContentConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    LLMConfigurationError,
    LLMException,
    LLMTransportError,
    LLMUnavailableException,
    Role,
    TextPart,
    ThinkingPart,
    Tool,
    Usage,
)
from .credentials import CredentialsManager
from .factory import create_content_generator
from .gemini import GeminiGenerator
from .openai_compatible import OpenAICompatibleGenerator
from .streaming import StreamDecoder
from .thinking import StreamingThinkingExtractor, extract_thinking
from .tokens import TokenAccountant
from .translator import ContentTranslator

__all__ = [
    "Content",
    "ContentGenerator",
    "CountTokensRequest",
    "EmbedContentRequest",
    "EmbedContentResponse",
    "FinishReason",
    "FunctionCallPart",
    "FunctionDeclaration",
    "FunctionResponsePart",
    "GenerateContentConfig",
    "GenerateContentRequest",
    "GenerateContentResponse",
    "LLMConfigurationError",
    "LLMException",
    "LLMTransportError",
    "LLMUnavailableException",
    "Role",
    "TextPart",
    "ThinkingPart",
    "Tool",
    "Usage",
    "CredentialsManager",
    "create_content_generator",
    "GeminiGenerator",
    "OpenAICompatibleGenerator",
    "StreamDecoder",
    "StreamingThinkingExtractor",
    "extract_thinking",
    "TokenAccountant",
    "ContentTranslator",
]
