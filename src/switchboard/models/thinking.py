"""Separate a model's reasoning channel from its answer text.

Backends that do not report reasoning in a dedicated field inline it between
delimiter tokens. Which convention a backend uses is not negotiated, so the
known pairs are tried in a fixed priority order.

Two entry points:

* :func:`extract_thinking` works on a complete response.
* :class:`StreamingThinkingExtractor` works fragment by fragment and copes with
  delimiters that straddle fragment boundaries.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DelimiterPair = Tuple[str, str]

# Highest priority first.
DELIMITER_PATTERNS: Tuple[DelimiterPair, ...] = (
    ("<thinking>", "</thinking>"),
    ("**思考过程**", "**回答**"),
    ("【思考】", "【回答】"),
)

_COMPILED = tuple(
    re.compile(re.escape(open_tag) + r"(.*?)" + re.escape(close_tag), re.DOTALL)
    for open_tag, close_tag in DELIMITER_PATTERNS
)


def extract_thinking(text: str, reasoning: Optional[str] = None) -> Tuple[str, str]:
    """Split a complete response into ``(thinking, answer)``.

    A structured ``reasoning`` value reported by the backend wins and delimiter
    scanning is skipped. Otherwise the first delimiter pair that matches is
    used; its interior becomes the thinking text and the whole delimited span
    is removed from the answer. Without a match the text is returned untouched.
    """
    if reasoning:
        return reasoning.strip(), text

    for pattern in _COMPILED:
        match = pattern.search(text)
        if match:
            answer = text[: match.start()] + text[match.end() :]
            return match.group(1).strip(), answer.strip()
    return "", text


class Channel(str, Enum):
    MAIN = "main"
    THINKING = "thinking"


class ThinkMode(str, Enum):
    OUTSIDE = "outside"
    INSIDE_THINK = "inside_think"


@dataclass(frozen=True)
class Emission:
    channel: Channel
    text: str


@dataclass
class StreamState:
    """Per-stream state; never shared between calls."""

    mode: ThinkMode = ThinkMode.OUTSIDE
    pending: str = ""
    # Tail of the last fragment that may be the start of a delimiter.
    carry: str = ""
    close_tag: str = ""


def _partial_suffix(text: str, tags: Sequence[str]) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of a tag."""
    best = 0
    for tag in tags:
        for size in range(min(len(tag) - 1, len(text)), best, -1):
            if text.endswith(tag[:size]):
                best = size
                break
    return best


@dataclass
class StreamingThinkingExtractor:
    """Incremental splitter fed one text fragment at a time.

    Main-channel text is emitted as soon as it is known not to be part of a
    delimiter. Thinking text is held until its closing delimiter arrives and
    then emitted as a single emission for the whole span.
    """

    pairs: Sequence[DelimiterPair] = DELIMITER_PATTERNS
    state: StreamState = field(default_factory=StreamState)
    logger: logging.Logger = field(default=logger, repr=False)

    def feed(self, fragment: str) -> List[Emission]:
        state = self.state
        text = state.carry + fragment
        state.carry = ""
        emissions: List[Emission] = []

        while text:
            if state.mode is ThinkMode.OUTSIDE:
                found = self._find_open(text)
                if found is None:
                    hold = _partial_suffix(text, [open_tag for open_tag, _ in self.pairs])
                    cut = len(text) - hold
                    if cut:
                        emissions.append(Emission(Channel.MAIN, text[:cut]))
                    state.carry = text[cut:]
                    break
                index, open_tag, close_tag = found
                if index:
                    emissions.append(Emission(Channel.MAIN, text[:index]))
                text = text[index + len(open_tag) :]
                state.mode = ThinkMode.INSIDE_THINK
                state.close_tag = close_tag
            else:
                index = text.find(state.close_tag)
                if index < 0:
                    hold = _partial_suffix(text, [state.close_tag])
                    cut = len(text) - hold
                    state.pending += text[:cut]
                    state.carry = text[cut:]
                    break
                thought = state.pending + text[:index]
                if thought:
                    emissions.append(Emission(Channel.THINKING, thought))
                text = text[index + len(state.close_tag) :]
                state.pending = ""
                state.close_tag = ""
                state.mode = ThinkMode.OUTSIDE

        return emissions

    def finish(self) -> List[Emission]:
        """Flush at end of stream.

        Held main-channel text that turned out not to be a delimiter is
        released. An unterminated thinking span is dropped rather than closed.
        """
        state = self.state
        emissions: List[Emission] = []
        if state.mode is ThinkMode.INSIDE_THINK:
            dropped = len(state.pending) + len(state.carry)
            self.logger.warning(
                "Stream ended inside an unterminated thinking span; discarding it",
                extra={"discarded_chars": dropped},
            )
        elif state.carry:
            emissions.append(Emission(Channel.MAIN, state.carry))
        self.state = StreamState()
        return emissions

    def _find_open(self, text: str) -> Optional[Tuple[int, str, str]]:
        best: Optional[Tuple[int, str, str]] = None
        for open_tag, close_tag in self.pairs:
            index = text.find(open_tag)
            if index >= 0 and (best is None or index < best[0]):
                best = (index, open_tag, close_tag)
        return best
