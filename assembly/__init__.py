"""
Request Assembly Module.

Turns the running conversation into one token-bounded chat request for
whichever provider is active.

Best practices:
- Size everything from the provider's capabilities, never from its identity
- Pin canonical facts ahead of anything ranked
- Compress history locally and deterministically
- Never modify the turn the author just wrote

Usage:
    from assembly import RequestAssembler, dispatch

    assembler = RequestAssembler(provider.capabilities(), index=index)
    assembled = assembler.assemble(messages, model="gpt-4o", mode="hybrid")
    response = dispatch(provider, assembled)
"""

from .prompts import (
    NOVEL_WRITING_PROMPT,
    CanonicalFact,
    ProjectProfile,
    extract_top_facts,
    render_canonical_facts,
    render_story_overview,
)
from .provider import Provider
from .request_assembler import (
    AssembledRequest,
    AssemblyError,
    ContextMode,
    RequestAssembler,
    assemble_chat_request,
    dispatch,
    split_current_user_message,
)

__all__ = [
    "AssembledRequest",
    "AssemblyError",
    "CanonicalFact",
    "ContextMode",
    "NOVEL_WRITING_PROMPT",
    "ProjectProfile",
    "Provider",
    "RequestAssembler",
    "assemble_chat_request",
    "dispatch",
    "extract_top_facts",
    "render_canonical_facts",
    "render_story_overview",
    "split_current_user_message",
]
