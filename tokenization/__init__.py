"""
Token counting.

Usage:
    from tokenization import get_counter

    counter = get_counter(capabilities.tokenizer_type)
    counter.count("Mira drew her sword.")
"""

from .token_counter import (
    APPROXIMATE_SCHEMES,
    EXACT_SCHEMES,
    TokenCounter,
    estimate_tokens,
    get_counter,
)

__all__ = [
    "APPROXIMATE_SCHEMES",
    "EXACT_SCHEMES",
    "TokenCounter",
    "estimate_tokens",
    "get_counter",
]
