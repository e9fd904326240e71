"""Heuristic token counting.

Exact tokenization depends on the embedding model, which the chunker
does not know.  The estimate only has to be good enough to keep chunks
under a provider's input limit, so it errs on the high side.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

_WORD_RE = re.compile(r"[^\W\d_]+(?:['’][^\W\d_]+)*", re.UNICODE)
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")
_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
_CYRILLIC_RE = re.compile(r"[\u0400-\u04ff]")
_ARABIC_RE = re.compile(r"[\u0600-\u06ff]")

# Tokens per word by dominant script.  Rough guesses, not measurements.
SCRIPT_MULTIPLIERS: dict[str, float] = {
    "latin": 1.3,
    "cyrillic": 2.0,
    "arabic": 2.2,
}

# Number of characters a token covers on average; used to turn token
# budgets into character windows.
CHARS_PER_TOKEN = 4


class TokenEstimator(ABC):
    """Strategy interface for counting tokens in a piece of text."""

    @abstractmethod
    def estimate(self, text: str) -> int:
        """Return the estimated token count; ``0`` only for blank text."""
        ...


class HeuristicTokenEstimator(TokenEstimator):
    """Word-count based estimate with script and symbol adjustments.

    Parameters
    ----------
    multipliers:
        Tokens-per-word factor by script name (``latin``, ``cyrillic``,
        ``arabic``).  CJK characters are counted one token each.
    punctuation_weight:
        Tokens charged per punctuation mark.
    number_weight:
        Tokens charged per digit group on top of the group itself.
    """

    def __init__(
        self,
        multipliers: dict[str, float] | None = None,
        *,
        punctuation_weight: float = 0.5,
        number_weight: float = 1.0,
    ) -> None:
        self.multipliers = {**SCRIPT_MULTIPLIERS, **(multipliers or {})}
        self.punctuation_weight = punctuation_weight
        self.number_weight = number_weight

    def estimate(self, text: str) -> int:
        if not text or not text.strip():
            return 0

        cjk_chars = len(_CJK_RE.findall(text))
        remainder = _CJK_RE.sub(" ", text) if cjk_chars else text

        words = _WORD_RE.findall(remainder)
        numbers = _NUMBER_RE.findall(remainder)
        punctuation = len(_PUNCT_RE.findall(remainder))

        estimate = (
            len(words) * self.multipliers.get(self._dominant_script(remainder), self.multipliers["latin"])
            + cjk_chars
            + sum(1 + len(n) // 3 for n in numbers) * self.number_weight
            + punctuation * self.punctuation_weight
        )
        return max(1, int(round(estimate)))

    @staticmethod
    def _dominant_script(text: str) -> str:
        cyrillic = len(_CYRILLIC_RE.findall(text))
        arabic = len(_ARABIC_RE.findall(text))
        letters = sum(1 for ch in text if ch.isalpha())
        if not letters:
            return "latin"
        if cyrillic * 2 > letters:
            return "cyrillic"
        if arabic * 2 > letters:
            return "arabic"
        return "latin"


def tokens_to_chars(tokens: int) -> int:
    """Convert a token budget into an approximate character count."""
    return max(0, tokens) * CHARS_PER_TOKEN
