"""
Document sources feeding the indexer.

The surrounding application owns where story files live on disk; the core
only needs something that can enumerate documents with their type, path,
content and modification time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Iterator, Optional, Protocol, runtime_checkable

from retrieval.models import SourceType, utc_now


@dataclass
class SourceDocument:
    """A whole story document before chunking."""

    path: str
    content: str
    source_type: Optional[SourceType] = None
    mtime: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.source_type is not None:
            self.source_type = SourceType(self.source_type)


@runtime_checkable
class DocumentSource(Protocol):
    """
    Protocol for content sources.

    Uses structural subtyping - no inheritance required.
    """

    def documents(self) -> Iterator[SourceDocument]:
        """Yield every document currently in the project."""
        ...


class InMemoryDocumentSource:
    """Document source backed by a dict, for embedding and tests."""

    def __init__(self, documents: Iterable[SourceDocument] = ()):
        self._documents: Dict[str, SourceDocument] = {}
        for doc in documents:
            self.add(doc)

    def add(self, document: SourceDocument) -> None:
        """Add or replace a document by path."""
        self._documents[document.path] = document

    def remove(self, path: str) -> Optional[SourceDocument]:
        return self._documents.pop(path, None)

    def documents(self) -> Iterator[SourceDocument]:
        yield from list(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)
