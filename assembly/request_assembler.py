"""
Request assembly: one token-bounded chat request per user turn.

Pipeline:
1. Budget the provider's context window
2. Retrieve and select story chunks (hybrid mode only)
3. Build the system prompt: canonical facts, story overview, context
   section, instructions
4. Compress history (digest of older turns, then newest-first truncation)
5. Emit: system message, history, current user message

Guarantees on the emitted message list:
- Exactly one system message, first
- History keeps chronological order
- The current user message is last and forwarded unmodified
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from context.context_budgeting import ContextBudget
from context.context_manager import ContextManager
from monitoring.latency_metrics import LatencyCollector, LatencyMetrics, timed
from retrieval.chunk_index import ChunkIndex, ChunkIndexError
from retrieval.models import Chunk
from shared.config import AssemblyConfig
from shared.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    ProviderCapabilities,
    Role,
    StreamChunk,
    ToolDefinition,
)
from tokenization.token_counter import TokenCounter, get_counter

from .prompts import (
    CanonicalFact,
    ProjectProfile,
    build_instructions,
    build_system_prompt,
    render_canonical_facts,
    render_story_overview,
)
from .provider import Provider

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Summary of earlier conversation:\n"


class ContextMode(str, Enum):
    HYBRID = "hybrid"  # live search with the latest user message
    ESSENTIAL = "essential"  # no search


class AssemblyError(Exception):
    """Raised when a request cannot be assembled from the given messages."""


@dataclass
class AssembledRequest:
    """A ready-to-send request plus what went into it."""

    request: ChatRequest
    system_prompt: str
    budget: ContextBudget
    mode: ContextMode
    selected_chunks: List[Chunk] = field(default_factory=list)
    history_digest: str = ""
    retrieval_skipped: bool = False
    estimated_tokens: int = 0

    @property
    def messages(self) -> List[ConversationMessage]:
        return self.request.messages


def split_current_user_message(
    messages: Sequence[ConversationMessage],
) -> Tuple[Optional[ConversationMessage], List[ConversationMessage]]:
    """
    Separate the turn being sent from the history before it.

    The current turn is the last user message. Anything after it (an
    unanswered assistant draft, for instance) is not part of the request.
    """
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == Role.USER:
            return messages[i], list(messages[:i])
    return None, list(messages)


class RequestAssembler:
    """
    Assembles chat requests for one provider.

    The assembler is bound to a capability descriptor: budgets, tokenizer
    and output cap all derive from it. Build a new assembler when the
    active model changes.

    Usage:
        assembler = RequestAssembler(provider.capabilities(), index=index)
        assembled = assembler.assemble(messages, model="gpt-4o")
        response = dispatch(provider, assembled)
    """

    def __init__(
        self,
        capabilities: ProviderCapabilities,
        config: Optional[AssemblyConfig] = None,
        index: Optional[ChunkIndex] = None,
        collector: Optional[LatencyCollector] = None,
    ):
        """
        Args:
            capabilities: The active provider's capability descriptor
            config: Assembly tuning (defaults apply when omitted)
            index: Chunk index used for hybrid retrieval, if any
            collector: Optional latency collector

        Raises:
            ConfigurationError: If the declared tokenizer is unknown
        """
        self.capabilities = capabilities
        self.config = config or AssemblyConfig()
        self.index = index
        self.collector = collector

        self.max_context_tokens = (
            capabilities.max_context_tokens or self.config.default_context_limit
        )
        self.counter: TokenCounter = get_counter(capabilities.tokenizer_type)
        self.context = ContextManager(
            self.config.context, self.max_context_tokens, self.counter
        )

    def assemble(
        self,
        messages: Sequence[ConversationMessage],
        model: str = "",
        mode: Union[ContextMode, str] = ContextMode.HYBRID,
        canonical_facts: Optional[Sequence[CanonicalFact]] = None,
        profile: Optional[ProjectProfile] = None,
        tools: Optional[Sequence[ToolDefinition]] = None,
        story_overview: Optional[Sequence[CanonicalFact]] = None,
    ) -> AssembledRequest:
        """
        Assemble the request for the latest user turn.

        Args:
            messages: Running conversation, oldest first
            model: Model identifier placed on the request
            mode: hybrid (search the index) or essential (no search)
            canonical_facts: Pinned facts, always included first
            profile: Project information for the instructions
            tools: Tool definitions, attached only if the provider supports tools
            story_overview: Character, setting and plot entries listed one
                line each ahead of retrieved chunks, in both modes

        Returns:
            AssembledRequest

        Raises:
            AssemblyError: If there is no user message to send
        """
        mode = ContextMode(mode)
        with timed() as total:
            user_msg, prior = split_current_user_message(messages)
            if user_msg is None:
                raise AssemblyError("no user message to send")

            budget = self.context.calculate_budget()
            overview = render_story_overview(story_overview, self.counter, budget.context)
            chunk_budget = max(0, budget.context - self.counter.count(overview))

            with timed() as retrieval:
                selected, skipped = self._retrieve(mode, user_msg.content, chunk_budget)
            effective_mode = ContextMode.ESSENTIAL if skipped else mode

            system_prompt = build_system_prompt(
                render_canonical_facts(canonical_facts),
                overview,
                self.context.build_context_prompt(selected),
                build_instructions(profile, self.counter, budget.system_prompt),
            )

            with timed() as compression:
                history, digest = self._compress_history(prior, user_msg, budget.history)

            chat_messages = [
                ConversationMessage.system(system_prompt),
                *history,
                user_msg,
            ]

            request = ChatRequest(
                messages=chat_messages,
                model=model,
                max_tokens=self._max_output_tokens(budget),
                temperature=self.config.temperature,
                tools=list(tools or []) if self.capabilities.supports_tools else [],
            )
            estimated = self.counter.count_messages(chat_messages)

        if estimated > self.max_context_tokens:
            logger.warning(
                f"Assembled prompt estimated at {estimated} tokens exceeds "
                f"context window of {self.max_context_tokens}"
            )
        logger.info(
            f"Assembled {len(chat_messages)} messages ({estimated} tokens, "
            f"{len(selected)} chunks, mode={effective_mode.value}) "
            f"in {total.elapsed_ms:.1f}ms"
        )

        if self.collector is not None:
            self.collector.record(
                LatencyMetrics(
                    total_ms=total.elapsed_ms,
                    retrieval_ms=retrieval.elapsed_ms if mode == ContextMode.HYBRID else None,
                    compression_ms=compression.elapsed_ms,
                    model=model or None,
                )
            )

        return AssembledRequest(
            request=request,
            system_prompt=system_prompt,
            budget=budget,
            mode=effective_mode,
            selected_chunks=selected,
            history_digest=digest,
            retrieval_skipped=skipped,
            estimated_tokens=estimated,
        )

    def _retrieve(self, mode: ContextMode, query: str, context_budget: int) -> Tuple[List[Chunk], bool]:
        """
        Search and select chunks for the context section.

        Returns:
            (selected chunks, whether retrieval was skipped by degradation)
        """
        if mode != ContextMode.HYBRID:
            return [], False
        if self.index is None:
            logger.warning("No chunk index available, degrading to essential mode")
            return [], True
        if not query.strip() or context_budget <= 0:
            return [], False

        limit = max(self.config.search_candidate_limit, 4 * self.config.context.max_chunks)
        try:
            ranked = self.index.search(query, limit)
        except ChunkIndexError as e:
            logger.warning(f"Chunk search failed, degrading to essential mode: {e}")
            return [], True

        # Room for section headings
        usable = context_budget
        if usable > self.config.heading_reserve_tokens:
            usable -= self.config.heading_reserve_tokens

        return self.context.select_chunks(ranked, usable), False

    def _compress_history(
        self,
        prior: Sequence[ConversationMessage],
        user_msg: ConversationMessage,
        history_budget: int,
    ) -> Tuple[List[ConversationMessage], str]:
        """
        Fit prior turns into what the history budget leaves after the
        current user message.

        Returns:
            (history messages to send, digest used or "")
        """
        # The system prompt is rebuilt on every turn
        prior = [msg for msg in prior if msg.role != Role.SYSTEM]

        user_tokens = self.counter.count(user_msg.content)
        remaining = history_budget - user_tokens
        if remaining < 0:
            logger.warning(
                f"Current message ({user_tokens} tokens) exceeds history budget "
                f"({history_budget}); sending it without history"
            )
            return [], ""

        keep = self.config.keep_recent_messages
        prior_tokens = sum(self.counter.count(msg.content) for msg in prior)
        if prior_tokens + user_tokens <= history_budget or len(prior) <= keep:
            return self.context.truncate_history(prior, remaining), ""

        _, recent = self.context.summarize_history(prior, keep)
        kept = self.context.truncate_history(recent, remaining)
        # Recent turns that did not fit are digested with the older ones
        digest, _ = self.context.summarize_history(prior, len(kept))

        summary = ConversationMessage.assistant(SUMMARY_PREFIX + digest)
        used = sum(self.counter.count(msg.content) for msg in kept)
        if used + self.counter.count(summary.content) > remaining:
            logger.debug("History digest does not fit after recent messages, dropped")
            return kept, ""

        logger.debug(f"Summarized {len(digest.splitlines())} older messages")
        return [summary, *kept], digest

    def _max_output_tokens(self, budget: ContextBudget) -> int:
        max_out = budget.response
        cap = self.capabilities.max_output_tokens
        if cap > 0 and max_out > cap:
            max_out = cap
        if max_out <= 0:
            max_out = self.config.default_max_output_tokens
        return max_out


def assemble_chat_request(
    capabilities: ProviderCapabilities,
    messages: Sequence[ConversationMessage],
    index: Optional[ChunkIndex] = None,
    model: str = "",
    mode: Union[ContextMode, str] = ContextMode.HYBRID,
    canonical_facts: Optional[Sequence[CanonicalFact]] = None,
    profile: Optional[ProjectProfile] = None,
    tools: Optional[Sequence[ToolDefinition]] = None,
    config: Optional[AssemblyConfig] = None,
    story_overview: Optional[Sequence[CanonicalFact]] = None,
) -> AssembledRequest:
    """One-shot assembly for callers that do not keep an assembler around."""
    assembler = RequestAssembler(capabilities, config=config, index=index)
    return assembler.assemble(
        messages,
        model=model,
        mode=mode,
        canonical_facts=canonical_facts,
        profile=profile,
        tools=tools,
        story_overview=story_overview,
    )


def dispatch(
    provider: Provider,
    assembled: AssembledRequest,
    stream: bool = False,
) -> Union[ChatResponse, Iterator[StreamChunk]]:
    """
    Hand an assembled request to a provider.

    Streams only when asked to and the provider supports it; otherwise
    falls back to a single chat call.
    """
    if stream and provider.capabilities().supports_streaming:
        return provider.stream(assembled.request)
    return provider.chat(assembled.request)
