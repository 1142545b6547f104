"""
Configuration module for the story context engine.
Manages budget ratios, context settings and environment-driven defaults.

Components never read configuration from module globals at call time:
build a ContextConfig / AssemblyConfig once and pass it in explicitly, so
assemblies for different models cannot interfere with each other.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from functools import lru_cache

# Ratios must sum to 1.0 within this tolerance.
RATIO_TOLERANCE = 0.01

DEFAULT_MAX_CHUNKS = 5
DEFAULT_CHUNK_SIZE = 800
DEFAULT_CHUNK_OVERLAP = 0.15


class ConfigurationError(ValueError):
    """Raised when a component is constructed with invalid configuration."""

    pass


@dataclass(frozen=True)
class BudgetRatios:
    """Fractions of the context window given to each part of the prompt."""

    system_prompt: float = 0.20
    context: float = 0.40
    history: float = 0.30
    response: float = 0.10

    def __post_init__(self):
        parts = (self.system_prompt, self.context, self.history, self.response)
        if not all(math.isfinite(r) for r in parts):
            raise ConfigurationError(f"Budget ratios must be finite: {parts}")
        if any(r < 0 for r in parts):
            raise ConfigurationError(f"Budget ratios must be non-negative: {parts}")
        total = sum(parts)
        if abs(total - 1.0) > RATIO_TOLERANCE:
            raise ConfigurationError(
                f"Budget ratios must sum to 1.0 (got {total:.3f})"
            )

    @classmethod
    def normalized(
        cls, system_prompt: float, context: float, history: float, response: float
    ) -> "BudgetRatios":
        """Scale arbitrary non-negative weights so they sum to exactly 1.0."""
        total = system_prompt + context + history + response
        if not math.isfinite(total) or total <= 0:
            return cls()
        return cls(
            system_prompt=system_prompt / total,
            context=context / total,
            history=history / total,
            response=response / total,
        )


@dataclass(frozen=True)
class ContextConfig:
    """Chunk selection and chunking configuration."""

    max_chunks: int = DEFAULT_MAX_CHUNKS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: float = DEFAULT_CHUNK_OVERLAP
    ratios: BudgetRatios = field(default_factory=BudgetRatios)

    def __post_init__(self):
        # Negative counts mean "nothing", not an error.
        if self.max_chunks < 0:
            object.__setattr__(self, "max_chunks", 0)
        if self.chunk_size <= 0:
            object.__setattr__(self, "chunk_size", DEFAULT_CHUNK_SIZE)
        if not 0 <= self.chunk_overlap < 1:
            raise ConfigurationError(
                f"chunk_overlap must be in [0, 1), got {self.chunk_overlap}"
            )


@dataclass(frozen=True)
class AssemblyConfig:
    """Request assembly tuning."""

    context: ContextConfig = field(default_factory=ContextConfig)
    keep_recent_messages: int = 6
    search_candidate_limit: int = 50
    heading_reserve_tokens: int = 200
    default_context_limit: int = 8192
    default_max_output_tokens: int = 1024
    temperature: float = 0.7

    def __post_init__(self):
        if self.keep_recent_messages < 0:
            object.__setattr__(self, "keep_recent_messages", 0)
        if self.search_candidate_limit < 0:
            object.__setattr__(self, "search_candidate_limit", 0)
        if self.heading_reserve_tokens < 0:
            object.__setattr__(self, "heading_reserve_tokens", 0)


def _env_number(name: str, cast, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class Settings:
    """Main application settings loaded from environment."""

    INDEX_PATH: str = field(
        default_factory=lambda: os.getenv("INDEX_PATH", ".story/index.db")
    )
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    DEFAULT_TOKENIZER: str = field(
        default_factory=lambda: os.getenv("DEFAULT_TOKENIZER", "cl100k_base")
    )
    MAX_CHUNKS: int = field(
        default_factory=lambda: _env_number("MAX_CHUNKS", int, DEFAULT_MAX_CHUNKS)
    )
    CHUNK_SIZE: int = field(
        default_factory=lambda: _env_number("CHUNK_SIZE", int, DEFAULT_CHUNK_SIZE)
    )
    CHUNK_OVERLAP: float = field(
        default_factory=lambda: _env_number(
            "CHUNK_OVERLAP", float, DEFAULT_CHUNK_OVERLAP
        )
    )

    def context_config(self, ratios: BudgetRatios = None) -> ContextConfig:
        """Build an immutable ContextConfig from these settings."""
        return ContextConfig(
            max_chunks=self.MAX_CHUNKS,
            chunk_size=self.CHUNK_SIZE,
            chunk_overlap=self.CHUNK_OVERLAP,
            ratios=ratios or BudgetRatios(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
