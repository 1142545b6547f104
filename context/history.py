"""
Conversation history compression.

Two deterministic tools, neither of which calls a model:
- truncate_history keeps the newest messages that fit a budget
- summarize_history condenses older turns into a bullet digest
"""

import logging
from typing import List, Optional, Sequence, Tuple

from shared.schemas import ConversationMessage, Role
from tokenization.token_counter import TokenCounter

logger = logging.getLogger(__name__)

BULLET_MAX_CHARS = 100

ROLE_LABELS = {
    Role.USER: "User",
    Role.ASSISTANT: "Assistant",
    Role.TOOL: "Tool",
    Role.SYSTEM: "System",
}


def shorten(text: str, max_chars: int = BULLET_MAX_CHARS) -> str:
    """Collapse whitespace and cap length with an ellipsis."""
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


def truncate_history(
    messages: Sequence[ConversationMessage],
    budget: int,
    counter: TokenCounter,
) -> List[ConversationMessage]:
    """
    Keep the most recent messages that fit within budget.

    The system message, if present, is always kept first and counted
    against the budget. The rest is filled newest to oldest and stops at the
    first message that would overflow; a message is never cut mid-content.

    Returns:
        Messages in chronological order
    """
    budget = max(0, budget)

    system_msg: Optional[ConversationMessage] = None
    history: List[ConversationMessage] = []
    for msg in messages:
        if msg.role == Role.SYSTEM:
            if system_msg is None:
                system_msg = msg
            continue
        history.append(msg)

    used = counter.count(system_msg.content) if system_msg else 0

    kept: List[ConversationMessage] = []
    for msg in reversed(history):
        tokens = counter.count(msg.content)
        if used + tokens > budget:
            break
        kept.append(msg)
        used += tokens
    kept.reverse()

    if len(kept) < len(history):
        logger.debug(f"History truncated: kept {len(kept)}/{len(history)} messages")

    if system_msg is not None:
        return [system_msg, *kept]
    return kept


def summarize_history(
    messages: Sequence[ConversationMessage],
    keep_count: int,
) -> Tuple[str, List[ConversationMessage]]:
    """
    Condense everything older than the last keep_count messages.

    Each older message becomes one role-labelled bullet, capped at
    BULLET_MAX_CHARS. Local, free and reproducible: no model is involved.

    Args:
        messages: Conversation in chronological order
        keep_count: Recent messages left untouched (negative -> 0)

    Returns:
        (digest, recent messages); digest is "" when nothing was condensed
    """
    keep_count = max(0, keep_count)
    if len(messages) <= keep_count:
        return "", list(messages)

    split = len(messages) - keep_count
    older, recent = messages[:split], list(messages[split:])

    lines = [
        f"- {ROLE_LABELS.get(msg.role, str(msg.role))}: {shorten(_describe(msg))}"
        for msg in older
    ]
    return "\n".join(lines), recent


def _describe(msg: ConversationMessage) -> str:
    if msg.content or not msg.has_tool_calls:
        return msg.content
    names = ", ".join(call.function.name for call in msg.tool_calls)
    return f"[called {names}]"
