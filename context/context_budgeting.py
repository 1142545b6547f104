"""
Context token budget management.

Treat the context window as a resource with a budget. The window size is a
capability of the active provider, not a constant, so budgets are computed
per assembly and never cached across model switches.
"""

import logging
from dataclasses import dataclass

from shared.config import BudgetRatios

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextBudget:
    """Token budget allocation."""

    system_prompt: int
    context: int
    history: int
    response: int
    total: int

    @property
    def available_for_input(self) -> int:
        """Tokens the prompt may use once the response reserve is held back."""
        return max(0, self.total - self.response)


def allocate_token_budget(max_context_tokens: int, ratios: BudgetRatios) -> ContextBudget:
    """
    Split a context window into the four budgets.

    Each budget is ``int(ratio * max_context_tokens)``; the remainder lost to
    truncation is left unallocated as headroom.

    Args:
        max_context_tokens: The provider's context window (negative -> 0)
        ratios: Validated budget ratios

    Returns:
        ContextBudget allocation
    """
    total = max(0, int(max_context_tokens))

    budget = ContextBudget(
        system_prompt=int(total * ratios.system_prompt),
        context=int(total * ratios.context),
        history=int(total * ratios.history),
        response=int(total * ratios.response),
        total=total,
    )
    logger.debug(f"Budget for {total} tokens: {budget}")
    return budget
