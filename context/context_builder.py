"""
Context selection and prompt section construction.

Best practices:
- Walk the ranking in order and fill the budget best-effort
- Skip a chunk that does not fit instead of truncating it, so the model
  never sees a broken fragment
- Group the selected material under stable headings the model can rely on
"""

import logging
from typing import Dict, List, Sequence

from retrieval.models import Chunk, SourceType

logger = logging.getLogger(__name__)

CONTEXT_HEADING = "## Relevant Context"

# Fixed section order and headings
SECTION_ORDER = (
    (SourceType.CHARACTER, "Characters"),
    (SourceType.SETTING, "Settings"),
    (SourceType.PLOT, "Plot"),
    (SourceType.CHAPTER, "Previous Chapters"),
    (SourceType.DOCUMENT, "Notes"),
)


def total_tokens(chunks: Sequence[Chunk]) -> int:
    return sum(chunk.token_count for chunk in chunks)


def select_chunks(chunks: Sequence[Chunk], budget: int, max_chunks: int) -> List[Chunk]:
    """
    Select chunks that fit within a token budget.

    Chunks are expected best-first. A chunk that would overflow the
    remaining budget is skipped and scanning continues, so one large
    relevant chunk never blocks smaller ones further down the ranking.
    Caller order is preserved.

    Args:
        chunks: Ranked chunks
        budget: Token budget (negative -> 0)
        max_chunks: Maximum chunks to include (negative -> 0)

    Returns:
        Selected chunks, in the order given
    """
    budget = max(0, budget)
    max_chunks = max(0, max_chunks)
    if budget == 0 or max_chunks == 0:
        return []

    selected: List[Chunk] = []
    used = 0
    for chunk in chunks:
        if len(selected) >= max_chunks:
            break
        if used + chunk.token_count > budget:
            continue
        selected.append(chunk)
        used += chunk.token_count

    logger.debug(f"Selected {len(selected)}/{len(chunks)} chunks ({used}/{budget} tokens)")
    return selected


def build_context_prompt(chunks: Sequence[Chunk]) -> str:
    """
    Render selected chunks as the context section of the system prompt.

    Example:
        ## Relevant Context

        ### Characters

        Mira is a dragon rider...

    Headings appear only for types that are present; empty input renders
    to the empty string.
    """
    if not chunks:
        return ""

    by_type: Dict[SourceType, List[Chunk]] = {}
    for chunk in chunks:
        by_type.setdefault(chunk.source_type, []).append(chunk)

    parts = [CONTEXT_HEADING]
    for source_type, heading in SECTION_ORDER:
        typed = by_type.get(source_type)
        if not typed:
            continue
        parts.append(f"### {heading}")
        parts.extend(chunk.content.strip() for chunk in typed)

    return "\n\n".join(parts)
