"""
Chunking and Indexing Module.

Chunking determines what the retriever can find.
This module provides:
- Token-window chunking with fractional overlap
- An indexer keeping the chunk index in step with the story documents

Rules of thumb:
- Measure chunk size in tokens with the active tokenizer
- Use 10-20% overlap to preserve context across boundaries
- Rebuild atomically; never leave a half-built index behind

Usage:
    from chunking import Indexer, TokenChunker

    indexer = Indexer(index, TokenChunker(counter, chunk_size=800, overlap=0.15))
    indexer.full_reindex(source)
"""

from .indexer import Indexer, IndexingError, IndexingStats
from .token_chunker import TokenChunker, determine_source_type, generate_chunk_id

__all__ = [
    "Indexer",
    "IndexingError",
    "IndexingStats",
    "TokenChunker",
    "determine_source_type",
    "generate_chunk_id",
]
