"""
Document Ingestion Module.

Defines what the indexer consumes: whole story documents (character sheets,
setting notes, plot outlines, chapters) with their paths and mtimes.

Usage:
    from ingestion import InMemoryDocumentSource, SourceDocument

    source = InMemoryDocumentSource([
        SourceDocument(path="characters/mira.md", content="# Mira ..."),
    ])
"""

from .document_source import DocumentSource, InMemoryDocumentSource, SourceDocument

__all__ = [
    "DocumentSource",
    "InMemoryDocumentSource",
    "SourceDocument",
]
