"""
Context manager: budgets, chunk selection, context prompt and history.

Holds only immutable configuration (ratios, chunk limits, tokenizer and the
window size it budgets against) and mutates nothing between calls, so one
instance per assembly is cheap and instances for different models never
interfere.
"""

from typing import List, Sequence, Tuple

from retrieval.models import Chunk
from shared.config import ContextConfig
from shared.schemas import ConversationMessage
from tokenization.token_counter import TokenCounter

from .context_budgeting import ContextBudget, allocate_token_budget
from .context_builder import build_context_prompt, select_chunks
from .history import summarize_history, truncate_history


class ContextManager:
    """
    Usage:
        manager = ContextManager(ContextConfig(max_chunks=5), 128000, counter)
        budget = manager.calculate_budget()
        selected = manager.select_chunks(ranked, budget.context)
        section = manager.build_context_prompt(selected)
    """

    def __init__(self, config: ContextConfig, max_context_tokens: int, counter: TokenCounter):
        """
        Args:
            config: Immutable context configuration
            max_context_tokens: The active provider's context window
            counter: Token counter bound to the active provider
        """
        self.config = config
        self.max_context_tokens = max(0, max_context_tokens)
        self.counter = counter

    def calculate_budget(self) -> ContextBudget:
        return allocate_token_budget(self.max_context_tokens, self.config.ratios)

    def select_chunks(self, chunks: Sequence[Chunk], budget: int) -> List[Chunk]:
        return select_chunks(chunks, budget, self.config.max_chunks)

    def build_context_prompt(self, chunks: Sequence[Chunk]) -> str:
        return build_context_prompt(chunks)

    def truncate_history(
        self, messages: Sequence[ConversationMessage], budget: int
    ) -> List[ConversationMessage]:
        return truncate_history(messages, budget, self.counter)

    def summarize_history(
        self, messages: Sequence[ConversationMessage], keep_count: int
    ) -> Tuple[str, List[ConversationMessage]]:
        return summarize_history(messages, keep_count)
