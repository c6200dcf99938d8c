"""Token counting: backend-reported usage when available, a character heuristic otherwise."""

from __future__ import annotations

import json
import logging
import math
from typing import Awaitable, Callable, Iterable, List, Optional

from .base import (
    Content,
    FunctionCallPart,
    FunctionResponsePart,
    LLMException,
    TextPart,
    Usage,
)

logger = logging.getLogger(__name__)

# Rough average for Latin text; not a tokenizer and not a budget guarantee.
HEURISTIC_TOKENS_PER_CHAR = 0.25

UsageProbe = Callable[[], Awaitable[Optional[Usage]]]


class TokenAccountant:
    def __init__(self, factor: float = HEURISTIC_TOKENS_PER_CHAR, logger: logging.Logger = logger) -> None:
        if factor <= 0:
            raise ValueError("factor must be positive")
        self.factor = factor
        self.logger = logger

    def estimate(self, contents: Iterable[Content]) -> int:
        return math.ceil(len(self.joined_text(contents)) * self.factor)

    async def count(self, contents: Iterable[Content], probe: Optional[UsageProbe] = None) -> int:
        """Prefer the prompt-token figure a real call reports; fall back to :meth:`estimate`."""
        contents = list(contents)
        if probe is not None:
            try:
                usage = await probe()
            except LLMException as exc:
                self.logger.debug("Usage probe failed, estimating instead: %s", exc)
            else:
                if usage is not None and usage.prompt_tokens:
                    return usage.prompt_tokens
        return self.estimate(contents)

    @staticmethod
    def joined_text(contents: Iterable[Content]) -> str:
        pieces: List[str] = []
        for content in contents:
            for part in content.parts:
                if isinstance(part, TextPart):
                    pieces.append(part.text)
                elif isinstance(part, FunctionCallPart):
                    pieces.append(json.dumps(part.args, ensure_ascii=False, default=str))
                elif isinstance(part, FunctionResponsePart):
                    pieces.append(json.dumps(part.response, ensure_ascii=False, default=str))
        return " ".join(pieces)
