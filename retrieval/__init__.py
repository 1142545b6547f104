"""
Lexical Retrieval Module.

Retrieval decides which story material the model gets to see.

This module implements:
- A persisted chunk index (SQLite, transactional writes)
- BM25 ranking with query sanitization
- Highlighted excerpts for search results

Usage:
    from retrieval import ChunkIndex

    index = ChunkIndex(".story/index.db")
    index.initialize()
    results = index.search("dragon rider", limit=5)
"""

from .chunk_index import DEFAULT_SEARCH_LIMIT, ChunkIndex, ChunkIndexError
from .lexical_retriever import (
    compute_bm25_score,
    extract_terms,
    highlight_snippet,
    query_terms,
    sanitize_query,
)
from .models import Chunk, HighlightedChunk, SourceType

__all__ = [
    "DEFAULT_SEARCH_LIMIT",
    "ChunkIndex",
    "ChunkIndexError",
    "Chunk",
    "HighlightedChunk",
    "SourceType",
    "compute_bm25_score",
    "extract_terms",
    "highlight_snippet",
    "query_terms",
    "sanitize_query",
]
