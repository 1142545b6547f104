"""
Indexing pipeline: documents -> chunks -> chunk index.

Flow:
Document source -> TokenChunker -> ChunkIndex (atomic reindex or per-path replace)
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

from ingestion.document_source import DocumentSource, SourceDocument
from retrieval.chunk_index import ChunkIndex
from retrieval.models import Chunk

from .token_chunker import TokenChunker

logger = logging.getLogger(__name__)


class IndexingError(Exception):
    """Raised when a document cannot be chunked. The index is left untouched."""

    pass


@dataclass
class IndexingStats:
    """Statistics from an indexing run."""

    documents: int = 0
    chunks: int = 0
    reindexed: int = 0
    removed: int = 0
    unchanged: int = 0


class Indexer:
    """
    Keeps the chunk index in step with a document source.

    Usage:
        indexer = Indexer(index, TokenChunker(counter))

        # Rebuild everything atomically
        stats = indexer.full_reindex(source)

        # One document changed
        indexer.update_document(document)

        # Pick up changes by modification time
        stats = indexer.sync(source)
    """

    def __init__(self, index: ChunkIndex, chunker: TokenChunker):
        self.index = index
        self.chunker = chunker

    def _chunk(self, document: SourceDocument) -> List[Chunk]:
        try:
            return self.chunker.chunk(document)
        except Exception as e:
            raise IndexingError(f"failed to chunk {document.path}: {e}") from e

    def full_reindex(self, source: DocumentSource) -> IndexingStats:
        """
        Rebuild the whole index from a document source.

        Every document is chunked before the index is touched; if any of them
        fails the run aborts and the previous index stays as it was.

        Raises:
            IndexingError: If chunking fails for any document
            ChunkIndexError: If the atomic reindex fails (rolled back)
        """
        stats = IndexingStats()
        all_chunks: List[Chunk] = []
        tracked = {}

        for document in source.documents():
            chunks = self._chunk(document)
            all_chunks.extend(chunks)
            tracked[document.path] = document.mtime
            stats.documents += 1

        self.index.reindex(all_chunks, tracked=tracked)
        stats.chunks = len(all_chunks)
        stats.reindexed = stats.documents

        logger.info(
            f"Full reindex: {stats.documents} documents, {stats.chunks} chunks"
        )
        return stats

    def update_document(self, document: SourceDocument) -> int:
        """
        Re-index one changed document without touching other paths.

        Returns:
            Number of chunks now indexed for the document
        """
        chunks = self._chunk(document)
        self.index.replace_source(document.path, chunks, mtime=document.mtime)
        logger.debug(f"Re-indexed {document.path}: {len(chunks)} chunks")
        return len(chunks)

    def remove_document(self, path: str) -> int:
        """Drop every chunk of a removed document."""
        return self.index.delete_by_source(path)

    def sync(self, source: DocumentSource) -> IndexingStats:
        """
        Incremental sync by modification time.

        New or newer documents are re-chunked; paths that disappeared from
        the source lose their chunks; everything else is left alone.
        """
        stats = IndexingStats()
        tracked: Dict[str, float] = self.index.get_tracked_files()
        seen = set()

        for document in source.documents():
            stats.documents += 1
            seen.add(document.path)

            indexed_at = tracked.get(document.path)
            if indexed_at is not None and document.mtime.timestamp() <= indexed_at:
                stats.unchanged += 1
                continue

            stats.chunks += self.update_document(document)
            stats.reindexed += 1

        for path in tracked:
            if path not in seen:
                self.remove_document(path)
                stats.removed += 1

        logger.info(
            f"Sync: {stats.reindexed} reindexed, {stats.removed} removed, "
            f"{stats.unchanged} unchanged"
        )
        return stats
