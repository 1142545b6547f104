"""
Token-window chunking.

Chunk sizes are budget inputs, so they are measured in tokens with the same
counter the rest of the system uses, never in characters. Consecutive
chunks overlap by a fraction of the window so a sentence cut at a boundary
still appears whole in one of them.
"""

import hashlib
import logging
from pathlib import PurePath
from typing import List

from ingestion.document_source import SourceDocument
from retrieval.models import Chunk, SourceType
from shared.config import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE
from tokenization.token_counter import TokenCounter

logger = logging.getLogger(__name__)

_DIRECTORY_TYPES = {
    "characters": SourceType.CHARACTER,
    "world": SourceType.SETTING,
    "settings": SourceType.SETTING,
    "plots": SourceType.PLOT,
    "chapters": SourceType.CHAPTER,
}


def determine_source_type(path: str) -> SourceType:
    """Infer the source type from the document's parent directory."""
    parent = PurePath(path.replace("\\", "/")).parent.name
    return _DIRECTORY_TYPES.get(parent, SourceType.DOCUMENT)


def generate_chunk_id(path: str, index: int) -> str:
    """Stable identifier for the index-th chunk of a path."""
    digest = hashlib.sha256(f"{path}:{index}".encode("utf-8")).hexdigest()
    return digest[:16]


class TokenChunker:
    """
    Split documents into overlapping, token-bounded chunks.

    Usage:
        chunker = TokenChunker(get_counter("cl100k_base"), chunk_size=800, overlap=0.15)
        chunks = chunker.chunk(document)
    """

    def __init__(
        self,
        counter: TokenCounter,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: float = DEFAULT_CHUNK_OVERLAP,
    ):
        """
        Args:
            counter: Token counter for the active tokenizer
            chunk_size: Target tokens per chunk (invalid values use the default)
            overlap: Fraction of overlap between consecutive chunks, in [0, 1)
        """
        if chunk_size <= 0:
            chunk_size = DEFAULT_CHUNK_SIZE
        if not 0 <= overlap < 1:
            overlap = DEFAULT_CHUNK_OVERLAP

        self.counter = counter
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> List[str]:
        """Split raw text into chunk texts, dropping blank windows."""
        if not text or not text.strip():
            return []
        return [
            piece
            for piece in self.counter.split(text, self.chunk_size, self.overlap)
            if piece.strip()
        ]

    def chunk(self, document: SourceDocument) -> List[Chunk]:
        """
        Chunk one document.

        Args:
            document: Whole document to split

        Returns:
            Chunks carrying the document's type, path and mtime, each with
            its own measured token count
        """
        source_type = document.source_type or determine_source_type(document.path)
        pieces = self.split(document.content)

        chunks = []
        for i, text in enumerate(pieces):
            chunks.append(
                Chunk(
                    content=text,
                    source_type=source_type,
                    source_path=document.path,
                    token_count=self.counter.count(text),
                    mtime=document.mtime,
                    metadata={
                        "chunk_index": i,
                        "total_chunks": len(pieces),
                        "chunk_id": generate_chunk_id(document.path, i),
                    },
                )
            )

        logger.debug(f"Document {document.path} chunked into {len(chunks)} chunks")
        return chunks
