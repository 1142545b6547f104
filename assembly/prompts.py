"""
System prompt sections for the novel-writing assistant.

The system prompt is built from four parts, in this order:
1. Canonical facts pinned by the author (never ranked, never budgeted)
2. A one-line-per-entry story overview, sized to the context budget
3. The retrieved context section
4. Static role and style instructions
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from context.context_builder import SECTION_ORDER
from context.history import shorten
from retrieval.models import SourceType
from tokenization.token_counter import TokenCounter

logger = logging.getLogger(__name__)

CANONICAL_HEADING = "## Canonical Facts"

# Facts taken from each pinned description
MAX_FACTS_PER_ENTRY = 2
FACT_MAX_CHARS = 80

OVERVIEW_HEADING = "## Story Overview"
OVERVIEW_MAX_CHARS = 200
OVERVIEW_SECTIONS = (
    (SourceType.CHARACTER, "Characters"),
    (SourceType.SETTING, "Settings"),
    (SourceType.PLOT, "Plot Points"),
)

NOVEL_WRITING_PROMPT = """You are an AI assistant specialized in collaborative novel writing. Your role is to:

1. Help develop compelling characters, settings, and plots
2. Write prose that matches the author's style and tone
3. Maintain consistency with established story elements
4. Suggest creative directions when asked
5. Provide constructive feedback on writing

When writing prose:
- Match the established writing style and voice
- Maintain continuity with previous chapters
- Keep characters behaving consistently with their established traits
- Use vivid, engaging descriptions
- Write natural, character-appropriate dialogue

When asked for suggestions:
- Consider the established story elements
- Offer multiple options when appropriate
- Explain your reasoning briefly

Always remember:
- The user is the author; you are a collaborative assistant
- Respect the user's creative vision
- Ask for clarification when needed
- Be specific in your suggestions"""

# Used when the full instructions do not fit the system prompt budget
BRIEF_NOVEL_WRITING_PROMPT = (
    "You are a collaborative novel-writing assistant. Stay consistent with "
    "the established story and respect the author's vision."
)

PROJECT_PROMPT = 'You are helping write a {genre} novel titled "{title}".'

WRITING_GUIDELINES_PROMPT = """Writing Guidelines:
- Style: {style}
- Point of View: {pov}
- Tense: {tense}"""

_HEADING_RE = re.compile(r"^#+\s+.*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[-*]\s+")
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_EMPHASIS_RE = re.compile(r"\*(.*?)\*")


@dataclass(frozen=True)
class ProjectProfile:
    """Project-level information rendered into the static instructions."""

    title: str
    genre: str = "fiction"
    style: str = "descriptive"
    pov: str = "third person"
    tense: str = "past"


@dataclass(frozen=True)
class CanonicalFact:
    """
    An author-pinned story element.

    The description is the element's markdown note; its first bullet points
    (or first line) become the pinned facts.
    """

    name: str
    description: str = ""
    source_type: SourceType = SourceType.CHARACTER

    def __post_init__(self):
        object.__setattr__(self, "source_type", SourceType(self.source_type))


def extract_top_facts(markdown: str, limit: int = MAX_FACTS_PER_ENTRY) -> List[str]:
    """
    Pull the leading facts out of a markdown note.

    Bullet points are preferred. Without bullets, the first non-empty line
    is used, capped at FACT_MAX_CHARS.
    """
    if limit <= 0:
        return []
    text = markdown.strip()
    if not text:
        return []

    text = _HEADING_RE.sub("", text)
    text = _BOLD_RE.sub(r"\1", text)
    text = _EMPHASIS_RE.sub(r"\1", text)
    lines = [line.strip() for line in text.splitlines() if line.strip()]

    facts = []
    for line in lines:
        if not _BULLET_RE.match(line):
            continue
        fact = _BULLET_RE.sub("", line).strip().rstrip(".")
        if fact:
            facts.append(fact)
            if len(facts) >= limit:
                break
    if facts:
        return facts

    if not lines:
        return []
    return [lines[0].rstrip(".")[:FACT_MAX_CHARS]]


def render_canonical_facts(facts: Optional[Sequence[CanonicalFact]]) -> str:
    """
    Render pinned facts grouped by source type.

    Example:
        ## Canonical Facts

        ### Characters
        - Mira: dragon rider, left-handed
    """
    if not facts:
        return ""

    parts = [CANONICAL_HEADING]
    for source_type, heading in SECTION_ORDER:
        lines = []
        for fact in facts:
            if fact.source_type != source_type:
                continue
            extracted = extract_top_facts(fact.description)
            if extracted:
                lines.append(f"- {fact.name}: {', '.join(extracted)}")
            else:
                lines.append(f"- {fact.name}")
        if lines:
            parts.append(f"### {heading}\n" + "\n".join(lines))

    return "\n\n".join(parts)


def render_story_overview(
    entries: Optional[Sequence[CanonicalFact]],
    counter: TokenCounter,
    budget: int,
) -> str:
    """
    One line per character, setting and plot entry, in section order.

    Descriptions are collapsed to a single line of at most
    OVERVIEW_MAX_CHARS. Entries are added until the budget is spent; an
    entry that does not fit is left out whole and later, shorter ones may
    still be added.

    Example:
        ## Story Overview

        ### Characters
        - **Mira**: A dragon rider from the northern isles.
    """
    if not entries or budget <= 0:
        return ""

    used = counter.count(OVERVIEW_HEADING)
    dropped = 0
    sections = []
    for source_type, heading in OVERVIEW_SECTIONS:
        section_heading = f"### {heading}"
        lines = []
        for entry in entries:
            if entry.source_type != source_type:
                continue
            summary = shorten(_HEADING_RE.sub("", entry.description), OVERVIEW_MAX_CHARS)
            line = f"- **{entry.name}**: {summary}" if summary else f"- **{entry.name}**"
            cost = counter.count(line)
            if not lines:
                cost += counter.count(section_heading)
            if used + cost > budget:
                dropped += 1
                continue
            lines.append(line)
            used += cost
        if lines:
            sections.append(section_heading + "\n" + "\n".join(lines))

    if not sections:
        return ""
    if dropped:
        logger.debug(f"Story overview left out {dropped} entries over {budget} tokens")
    return "\n\n".join([OVERVIEW_HEADING, *sections])


def build_instructions(
    profile: Optional[ProjectProfile],
    counter: TokenCounter,
    budget: int,
) -> str:
    """
    Static role and style instructions, sized to the system prompt budget.

    Falls back to the brief role line when the full text does not fit, so
    the instructions are never cut mid-sentence.
    """
    project_lines = []
    if profile is not None:
        project_lines.append(PROJECT_PROMPT.format(genre=profile.genre, title=profile.title))
        project_lines.append(
            WRITING_GUIDELINES_PROMPT.format(
                style=profile.style, pov=profile.pov, tense=profile.tense
            )
        )

    full = "\n\n".join([NOVEL_WRITING_PROMPT, *project_lines])
    if budget <= 0 or counter.count(full) <= budget:
        return full

    brief = "\n\n".join([BRIEF_NOVEL_WRITING_PROMPT, *project_lines])
    logger.debug(f"Instructions exceed {budget} tokens, using brief role prompt")
    if counter.count(brief) <= budget:
        return brief
    return BRIEF_NOVEL_WRITING_PROMPT


def build_system_prompt(*sections: str) -> str:
    """Join the non-empty sections in the order given."""
    parts = [part.strip() for part in sections]
    return "\n\n".join(part for part in parts if part)
