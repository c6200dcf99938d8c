"""Canonical request/response model shared by every backend adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple, Union

from ..errors import (  # noqa: F401 - re-exported for adapter modules
    LLMConfigurationError,
    LLMException,
    LLMTransportError,
    LLMUnavailableException,
)


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


class FinishReason(str, Enum):
    STOP = "stop"
    OTHER = "other"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ThinkingPart:
    """Intermediate reasoning, kept apart from the answer text."""

    text: str


@dataclass(frozen=True)
class FunctionCallPart:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass(frozen=True)
class FunctionResponsePart:
    """Result of a tool invocation; ``response`` is any JSON-serializable value."""

    name: str
    response: Any = None
    id: Optional[str] = None


CanonicalPart = Union[TextPart, ThinkingPart, FunctionCallPart, FunctionResponsePart]


@dataclass(frozen=True)
class Content:
    """One conversation turn: a role plus its ordered parts."""

    role: Role
    parts: Tuple[CanonicalPart, ...] = ()

    @classmethod
    def from_text(cls, role: Role | str, text: str) -> "Content":
        return cls(role=Role(role), parts=(TextPart(text),))


@dataclass(frozen=True)
class FunctionDeclaration:
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Tool:
    """A tool set; declarations from every set are flattened on the wire."""

    function_declarations: Tuple[FunctionDeclaration, ...] = ()


ToolChoice = Union[str, Dict[str, Any]]


@dataclass(frozen=True)
class GenerateContentConfig:
    temperature: float = 0.7
    max_output_tokens: int = 2048
    tools: Tuple[Tool, ...] = ()
    tool_choice: Optional[ToolChoice] = None
    include_thoughts: bool = False
    system_instruction: Optional[str] = None


@dataclass(frozen=True)
class GenerateContentRequest:
    contents: Tuple[Content, ...]
    config: GenerateContentConfig = field(default_factory=GenerateContentConfig)
    model: Optional[str] = None


@dataclass(frozen=True)
class CountTokensRequest:
    contents: Tuple[Content, ...]
    model: Optional[str] = None


@dataclass(frozen=True)
class EmbedContentRequest:
    contents: Tuple[str, ...]
    model: Optional[str] = None


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class GenerateContentResponse:
    """Canonical response (or one streamed partial of it)."""

    parts: List[CanonicalPart] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: Optional[Usage] = None
    model: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def thinking(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, ThinkingPart))

    @property
    def function_calls(self) -> List[FunctionCallPart]:
        return [p for p in self.parts if isinstance(p, FunctionCallPart)]


@dataclass
class EmbedContentResponse:
    embeddings: List[List[float]] = field(default_factory=list)


class ContentGenerator(ABC):
    """Interface the application talks to, whichever backend is active."""

    @abstractmethod
    async def generate_content(self, request: GenerateContentRequest) -> GenerateContentResponse:
        """Send one blocking request and return the full response."""

    @abstractmethod
    def generate_content_stream(
        self, request: GenerateContentRequest
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        """Yield partial responses as the backend streams them."""

    @abstractmethod
    async def count_tokens(self, request: CountTokensRequest) -> int:
        """Return a token count (possibly an estimate) for the request contents."""

    @abstractmethod
    async def embed_content(self, request: EmbedContentRequest) -> EmbedContentResponse:
        """Return one embedding vector per input string."""
