"""Shared fixtures for the story context engine tests."""

from typing import Iterator, List

import pytest

from retrieval.chunk_index import ChunkIndex
from retrieval.models import Chunk, SourceType
from shared.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    ProviderCapabilities,
    StreamChunk,
)
from tokenization.token_counter import get_counter


class WordCounter:
    """Counts whitespace-separated words; keeps budget arithmetic obvious."""

    def count(self, text: str) -> int:
        return len(text.split())


class FakeProvider:
    """In-memory provider recording what it was asked to send."""

    def __init__(self, capabilities: ProviderCapabilities):
        self._capabilities = capabilities
        self.chat_requests: List[ChatRequest] = []
        self.stream_requests: List[ChatRequest] = []
        self.closed = False

    def chat(self, request: ChatRequest) -> ChatResponse:
        self.chat_requests.append(request)
        return ChatResponse(message=ConversationMessage.assistant("Once upon a time."))

    def stream(self, request: ChatRequest) -> Iterator[StreamChunk]:
        self.stream_requests.append(request)
        yield StreamChunk(delta="Once upon ")
        yield StreamChunk(delta="a time.", done=True, finish_reason="stop")

    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def counter():
    return get_counter("cl100k_base")


@pytest.fixture
def word_counter():
    return WordCounter()


@pytest.fixture
def index(tmp_path):
    chunk_index = ChunkIndex(tmp_path / "index.db")
    chunk_index.initialize()
    return chunk_index


@pytest.fixture
def make_chunk():
    def _make(
        content: str = "text",
        source_type: SourceType = SourceType.CHARACTER,
        source_path: str = "characters/mira.md",
        token_count: int = 10,
    ) -> Chunk:
        return Chunk(
            content=content,
            source_type=source_type,
            source_path=source_path,
            token_count=token_count,
        )

    return _make


@pytest.fixture
def capabilities():
    return ProviderCapabilities(
        max_context_tokens=4000,
        max_output_tokens=2000,
        tokenizer_type="cl100k_base",
        supports_streaming=True,
        supports_tools=True,
    )


@pytest.fixture
def provider(capabilities):
    return FakeProvider(capabilities)
