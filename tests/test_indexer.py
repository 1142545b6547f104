from datetime import datetime, timedelta, timezone

import pytest

from chunking import Indexer, IndexingError, TokenChunker, determine_source_type, generate_chunk_id
from ingestion import InMemoryDocumentSource, SourceDocument
from retrieval import SourceType

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

CHAPTER_TEXT = " ".join(
    f"In chapter scene {i} the dragon circled the harbor while the city slept." for i in range(40)
)


class FailingChunker(TokenChunker):
    def __init__(self, counter, fail_path):
        super().__init__(counter, chunk_size=100)
        self.fail_path = fail_path

    def chunk(self, document):
        if document.path == self.fail_path:
            raise RuntimeError("malformed document")
        return super().chunk(document)


@pytest.fixture
def source():
    return InMemoryDocumentSource(
        [
            SourceDocument("characters/mira.md", "Mira is a dragon rider.", mtime=T0),
            SourceDocument("world/citadel.md", "The citadel stands on basalt cliffs.", mtime=T0),
            SourceDocument("chapters/01.md", CHAPTER_TEXT, mtime=T0),
        ]
    )


@pytest.mark.parametrize(
    "path,expected",
    [
        ("characters/mira.md", SourceType.CHARACTER),
        ("project/world/citadel.md", SourceType.SETTING),
        ("settings/citadel.md", SourceType.SETTING),
        ("plots/main.md", SourceType.PLOT),
        ("chapters/01.md", SourceType.CHAPTER),
        ("notes/ideas.md", SourceType.DOCUMENT),
        ("chapters\\02.md", SourceType.CHAPTER),
    ],
)
def test_determine_source_type(path, expected):
    assert determine_source_type(path) == expected


def test_generate_chunk_id_is_stable():
    assert generate_chunk_id("chapters/01.md", 0) == generate_chunk_id("chapters/01.md", 0)
    assert generate_chunk_id("chapters/01.md", 0) != generate_chunk_id("chapters/01.md", 1)
    assert len(generate_chunk_id("chapters/01.md", 0)) == 16


def test_chunker_measures_tokens(counter):
    chunker = TokenChunker(counter, chunk_size=50, overlap=0.15)
    chunks = chunker.chunk(SourceDocument("chapters/01.md", CHAPTER_TEXT, mtime=T0))
    assert len(chunks) > 1
    for i, chunk in enumerate(chunks):
        assert chunk.source_type == SourceType.CHAPTER
        assert chunk.source_path == "chapters/01.md"
        assert chunk.token_count == counter.count(chunk.content)
        assert chunk.mtime == T0
        assert chunk.metadata["chunk_index"] == i
        assert chunk.metadata["total_chunks"] == len(chunks)


def test_chunker_honours_explicit_type(counter):
    chunker = TokenChunker(counter)
    doc = SourceDocument("misc/mira.md", "Mira.", source_type="character")
    assert chunker.chunk(doc)[0].source_type == SourceType.CHARACTER


def test_chunker_blank_document(counter):
    assert TokenChunker(counter).chunk(SourceDocument("notes/empty.md", "   ")) == []


def test_chunker_invalid_settings_fall_back(counter):
    chunker = TokenChunker(counter, chunk_size=-5, overlap=1.5)
    assert chunker.chunk_size == 800
    assert chunker.overlap == 0.15


def test_full_reindex(index, counter, source):
    indexer = Indexer(index, TokenChunker(counter, chunk_size=100))
    stats = indexer.full_reindex(source)

    assert stats.documents == 3
    assert stats.chunks == index.get_chunk_count()
    assert index.get_chunk_count_by_type(SourceType.CHARACTER) == 1
    assert index.get_chunk_count_by_type(SourceType.SETTING) == 1
    assert index.get_chunk_count_by_type(SourceType.CHAPTER) > 1
    assert set(index.get_tracked_files()) == {"characters/mira.md", "world/citadel.md", "chapters/01.md"}


def test_full_reindex_replaces_previous_state(index, counter, source):
    index.index("stale phoenix note", "document", "notes/old.md", 3)
    Indexer(index, TokenChunker(counter)).full_reindex(source)
    assert index.search("phoenix") == []


def test_full_reindex_aborts_on_chunking_failure(index, counter, source):
    index.index("previous dragon note", "document", "notes/old.md", 3)
    indexer = Indexer(index, FailingChunker(counter, "world/citadel.md"))

    with pytest.raises(IndexingError):
        indexer.full_reindex(source)

    assert index.get_chunk_count() == 1
    assert [c.source_path for c in index.search("dragon")] == ["notes/old.md"]


def test_update_document_leaves_other_paths_alone(index, counter, source):
    indexer = Indexer(index, TokenChunker(counter, chunk_size=100))
    indexer.full_reindex(source)
    chapter_chunks = index.get_chunk_count_by_type(SourceType.CHAPTER)

    count = indexer.update_document(
        SourceDocument("characters/mira.md", "Mira now rides a phoenix.", mtime=T0 + timedelta(days=1))
    )

    assert count == 1
    assert [c.source_path for c in index.search("phoenix")] == ["characters/mira.md"]
    assert index.search("rider") == []
    assert index.get_chunk_count_by_type(SourceType.CHAPTER) == chapter_chunks


def test_remove_document(index, counter, source):
    indexer = Indexer(index, TokenChunker(counter))
    indexer.full_reindex(source)
    assert indexer.remove_document("characters/mira.md") == 1
    assert "characters/mira.md" not in index.get_tracked_files()


def test_sync_picks_up_changes(index, counter, source):
    indexer = Indexer(index, TokenChunker(counter, chunk_size=100))

    first = indexer.sync(source)
    assert first.reindexed == 3
    assert first.unchanged == 0

    second = indexer.sync(source)
    assert second.reindexed == 0
    assert second.unchanged == 3

    source.add(SourceDocument("characters/mira.md", "Mira now rides a phoenix.", mtime=T0 + timedelta(hours=1)))
    source.remove("world/citadel.md")
    third = indexer.sync(source)

    assert third.reindexed == 1
    assert third.removed == 1
    assert third.unchanged == 1
    assert len(index.search("phoenix")) == 1
    assert index.search("citadel") == []
