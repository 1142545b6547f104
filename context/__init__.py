"""
Context Assembly Module.

Treat prompt context as a resource with a budget.

This module handles:
- Token budget allocation from configured ratios
- Best-effort chunk selection within the context budget
- Rendering the context section of the system prompt
- Deterministic history truncation and digesting

Usage:
    from context import ContextManager

    manager = ContextManager(config, capabilities.max_context_tokens, counter)
    budget = manager.calculate_budget()
    section = manager.build_context_prompt(manager.select_chunks(ranked, budget.context))
"""

from .context_budgeting import ContextBudget, allocate_token_budget
from .context_builder import build_context_prompt, select_chunks, total_tokens
from .context_manager import ContextManager
from .history import summarize_history, truncate_history

__all__ = [
    "ContextBudget",
    "ContextManager",
    "allocate_token_budget",
    "build_context_prompt",
    "select_chunks",
    "summarize_history",
    "total_tokens",
    "truncate_history",
]
