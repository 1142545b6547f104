"""
Chunk data model shared by the index, the chunker and the context manager.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SourceType(str, Enum):
    CHARACTER = "character"
    SETTING = "setting"
    PLOT = "plot"
    CHAPTER = "chapter"
    DOCUMENT = "document"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Chunk:
    """
    A bounded excerpt of project content.

    ``id`` is assigned by the index; ``score`` is only set on search results
    (higher is more relevant).
    """

    content: str
    source_type: SourceType
    source_path: str
    token_count: int
    mtime: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    score: Optional[float] = None

    def __post_init__(self):
        self.source_type = SourceType(self.source_type)
        if self.token_count < 0:
            self.token_count = 0


@dataclass
class HighlightedChunk:
    """Search result carrying a highlighted excerpt."""

    chunk: Chunk
    snippet: str
