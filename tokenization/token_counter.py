"""
Token counting for context budget management.

Every budget in the system is expressed in the active model's tokenizer
units, so counting has to follow the scheme the provider declares:

- Exact schemes are tiktoken encodings (cl100k_base, o200k_base, ...)
- Approximate schemes cover providers without a public tokenizer
  (gemini, claude, local models). They encode with cl100k_base and inflate
  the result, so budgets built on them are never silently exceeded.
"""

import logging
import math
from functools import lru_cache
from typing import List, Sequence

import tiktoken

from shared.config import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

EXACT_SCHEMES = ("cl100k_base", "o200k_base", "p50k_base", "r50k_base")

# Approximate scheme -> base encoding used for the estimate.
APPROXIMATE_SCHEMES = {
    "gemini": DEFAULT_ENCODING,
    "claude": DEFAULT_ENCODING,
    "estimate": DEFAULT_ENCODING,
}

# Over-count factor for approximate schemes.
APPROXIMATION_FACTOR = 1.15

# OpenAI chat format overhead
MESSAGE_OVERHEAD = 4
REPLY_PRIMING = 2


def estimate_tokens(text: str) -> int:
    """Rough 4-characters-per-token estimate, rounded up."""
    if not text:
        return 0
    return (len(text) + 3) // 4


class TokenCounter:
    """
    Counts tokens under one named tokenizer scheme.

    Usage:
        counter = TokenCounter("o200k_base")
        n = counter.count("The dragon woke.")
    """

    def __init__(self, scheme: str = DEFAULT_ENCODING):
        """
        Args:
            scheme: Tokenizer scheme name; empty means "unknown" and is
                counted approximately

        Raises:
            ConfigurationError: If the scheme is not recognised
        """
        scheme = (scheme or "estimate").strip().lower()

        if scheme in EXACT_SCHEMES:
            encoding_name = scheme
            self.factor = 1.0
        elif scheme in APPROXIMATE_SCHEMES:
            encoding_name = APPROXIMATE_SCHEMES[scheme]
            self.factor = APPROXIMATION_FACTOR
        else:
            raise ConfigurationError(f"Unknown tokenizer scheme: {scheme!r}")

        try:
            self._enc = tiktoken.get_encoding(encoding_name)
        except ValueError as e:
            raise ConfigurationError(
                f"Tokenizer encoding unavailable for {scheme!r}: {e}"
            ) from e

        self.scheme = scheme
        self.encoding_name = encoding_name

    @property
    def is_approximate(self) -> bool:
        return self.factor > 1.0

    def encode(self, text: str) -> List[int]:
        """Encode text with the underlying base encoding."""
        if not text:
            return []
        return self._enc.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._enc.decode(list(tokens))

    def count(self, text: str) -> int:
        """Count tokens in text."""
        if not text:
            return 0
        n = len(self.encode(text))
        if self.is_approximate:
            return math.ceil(n * self.factor)
        return n

    def count_messages(self, messages) -> int:
        """
        Count tokens for a chat message list, including per-message overhead.

        Accepts anything with ``content`` and optional ``name`` attributes.
        """
        if not messages:
            return 0

        total = 0
        for msg in messages:
            total += MESSAGE_OVERHEAD
            total += self.count(msg.content)
            name = getattr(msg, "name", None)
            if name:
                total += self.count(name) + 1

        return total + REPLY_PRIMING

    def _raw_limit(self, max_tokens: int) -> int:
        """Convert a budget in counted units to base-encoding tokens."""
        return int(max_tokens / self.factor)

    def truncate(self, text: str, max_tokens: int, from_end: bool = False) -> str:
        """
        Truncate text to fit within max_tokens.

        Args:
            text: Text to truncate
            max_tokens: Token limit in this counter's units
            from_end: Keep the end of the text instead of the beginning

        Returns:
            The text unchanged if it fits, otherwise the kept part
        """
        if max_tokens <= 0:
            return ""
        if self.count(text) <= max_tokens:
            return text

        tokens = self.encode(text)
        limit = self._raw_limit(max_tokens)
        if limit <= 0:
            return ""
        if from_end:
            return self.decode(tokens[-limit:])
        return self.decode(tokens[:limit])

    def split(self, text: str, chunk_size: int, overlap: float) -> List[str]:
        """
        Split text into overlapping windows of about chunk_size tokens.

        Args:
            text: Text to split
            chunk_size: Target tokens per window, in this counter's units
            overlap: Fraction of each window repeated in the next one

        Returns:
            List of window texts (empty for empty input)
        """
        if not text or chunk_size <= 0:
            return []

        overlap = min(max(overlap, 0.0), 0.9)

        if self.count(text) <= chunk_size:
            return [text]

        tokens = self.encode(text)
        window = max(1, self._raw_limit(chunk_size))
        step = max(1, window - int(window * overlap))

        windows = []
        for start in range(0, len(tokens), step):
            end = min(start + window, len(tokens))
            windows.append(self.decode(tokens[start:end]))
            if end >= len(tokens):
                break

        return windows


@lru_cache(maxsize=None)
def get_counter(scheme: str = DEFAULT_ENCODING) -> TokenCounter:
    """Get a cached counter for a scheme. Counters are immutable."""
    return TokenCounter(scheme)
