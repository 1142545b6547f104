import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from retrieval import ChunkIndex, ChunkIndexError, SourceType


def test_index_assigns_new_ids(index):
    first = index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    second = index.index("The citadel stands on basalt.", "setting", "world/citadel.md", 6)
    assert second > first
    assert index.get_chunk_count() == 2


def test_get_chunk_round_trips_fields(index):
    mtime = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    chunk_id = index.index(
        "Mira rides a dragon.",
        SourceType.CHARACTER,
        "characters/mira.md",
        5,
        mtime=mtime,
        metadata={"chunk_index": 0},
    )
    chunk = index.get_chunk(chunk_id)
    assert chunk.id == chunk_id
    assert chunk.source_type == SourceType.CHARACTER
    assert chunk.source_path == "characters/mira.md"
    assert chunk.token_count == 5
    assert chunk.mtime == mtime
    assert chunk.metadata == {"chunk_index": 0}
    assert chunk.score is None


def test_search_ranks_best_match_first(index):
    index.index("dragon dragon dragon", "character", "characters/a.md", 3)
    index.index(
        "a long note about weather and harbors and ships that mentions a dragon once",
        "setting",
        "world/b.md",
        15,
    )
    results = index.search("dragon", limit=10)
    assert [c.source_path for c in results] == ["characters/a.md", "world/b.md"]
    assert results[0].score > results[1].score
    assert all(c.score is not None for c in results)


def test_search_requires_every_term(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    index.index("The dragon sleeps under the mountain.", "setting", "world/peak.md", 7)
    results = index.search("dragon mountain")
    assert [c.source_path for c in results] == ["world/peak.md"]


def test_search_unknown_term_returns_nothing(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    assert index.search("griffin") == []


def test_search_matches_word_forms(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    assert [c.source_path for c in index.search("dragons")] == ["characters/mira.md"]
    assert len(index.search("riding dragons")) == 1


def test_search_is_case_insensitive(index):
    index.index("Mira rides a Dragon.", "character", "characters/mira.md", 5)
    assert len(index.search("DRAGON")) == 1


def test_special_character_query_returns_empty_without_error(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    assert index.search('"*^:()-') == []
    assert index.search("") == []


def test_special_characters_are_stripped_from_terms(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    assert len(index.search('"dragon"')) == 1
    assert len(index.search("dra-gon*")) == 1


def test_equal_scores_keep_insertion_order(index):
    for path in ("chapters/03.md", "chapters/01.md", "chapters/02.md"):
        index.index("The silver dragon returned.", "chapter", path, 5)
    results = index.search("silver dragon")
    assert [c.source_path for c in results] == ["chapters/03.md", "chapters/01.md", "chapters/02.md"]
    assert [c.id for c in results] == sorted(c.id for c in results)


def test_search_limit(index):
    for i in range(5):
        index.index(f"dragon number {i}", "plot", f"plots/{i}.md", 3)
    assert len(index.search("dragon", limit=2)) == 2


def test_search_with_filter(index):
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    index.index("The dragon roost.", "setting", "world/roost.md", 4)
    results = index.search_with_filter("dragon", SourceType.SETTING)
    assert [c.source_path for c in results] == ["world/roost.md"]


def test_search_with_highlight(index):
    index.index("Mira rides a dragon over the sea.", "character", "characters/mira.md", 8)
    results = index.search_with_highlight("dragon", mark_start="<mark>", mark_end="</mark>")
    assert len(results) == 1
    assert "<mark>dragon</mark>" in results[0].snippet
    assert results[0].chunk.source_path == "characters/mira.md"


def test_search_with_highlight_elides_long_content(index):
    words = [f"filler{i}" for i in range(120)]
    words[60] = "dragon"
    index.index(" ".join(words), "chapter", "chapters/01.md", 120)
    snippet = index.search_with_highlight("dragon")[0].snippet
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "**dragon**" in snippet


def test_delete_by_source(index):
    index.index("dragon one", "chapter", "chapters/01.md", 2)
    index.index("dragon two", "chapter", "chapters/01.md", 2)
    index.index("dragon three", "chapter", "chapters/02.md", 2)
    assert index.delete_by_source("chapters/01.md") == 2
    assert [c.source_path for c in index.search("dragon")] == ["chapters/02.md"]


def test_replace_source_never_merges(index, make_chunk):
    index.index("old dragon text", "character", "characters/mira.md", 3)
    index.replace_source(
        "characters/mira.md",
        [make_chunk("new phoenix text", source_path="characters/mira.md")],
    )
    assert index.search("dragon") == []
    assert len(index.search("phoenix")) == 1
    assert index.get_chunk_count() == 1


def test_replace_source_rejects_foreign_chunks(index, make_chunk):
    with pytest.raises(ValueError):
        index.replace_source("characters/mira.md", [make_chunk(source_path="world/x.md")])


def test_clear(index):
    index.index("dragon", "plot", "plots/a.md", 1)
    index.clear()
    assert index.get_chunk_count() == 0
    assert index.search("dragon") == []


def test_reindex_leaves_no_stale_entries(index, make_chunk):
    index.index("old dragon text", "character", "characters/mira.md", 3)
    count = index.reindex([make_chunk("new phoenix text", source_path="characters/ash.md")])
    assert count == 1
    assert index.search("dragon") == []
    assert [c.source_path for c in index.search("phoenix")] == ["characters/ash.md"]


def test_reindex_rolls_back_on_failure(index, make_chunk, monkeypatch):
    index.index("old dragon text", "character", "characters/mira.md", 3)

    original = index._insert_chunk
    calls = []

    def failing_insert(conn, chunk, now):
        calls.append(chunk)
        if len(calls) == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return original(conn, chunk, now)

    monkeypatch.setattr(index, "_insert_chunk", failing_insert)

    with pytest.raises(ChunkIndexError):
        index.reindex(
            [
                make_chunk("new phoenix one", source_path="characters/a.md"),
                make_chunk("new phoenix two", source_path="characters/b.md"),
            ]
        )

    monkeypatch.undo()
    assert index.get_chunk_count() == 1
    assert len(index.search("dragon")) == 1
    assert index.search("phoenix") == []


def test_count_by_type(index):
    index.index("a", "character", "characters/a.md", 1)
    index.index("b", "character", "characters/b.md", 1)
    index.index("c", "plot", "plots/c.md", 1)
    assert index.get_chunk_count_by_type(SourceType.CHARACTER) == 2
    assert index.get_chunk_count_by_type("plot") == 1
    assert index.get_chunk_count_by_type(SourceType.CHAPTER) == 0


def test_storage_errors_are_wrapped(tmp_path):
    uninitialized = ChunkIndex(tmp_path / "missing.db")
    with pytest.raises(ChunkIndexError):
        uninitialized.search("dragon")


def test_stats(index):
    index.index("dragon", "plot", "plots/a.md", 4)
    stats = index.get_stats()
    assert stats["total_chunks"] == 1


def test_in_memory_index_keeps_state_between_operations():
    index = ChunkIndex(":memory:")
    index.initialize()
    try:
        index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
        assert index.get_chunk_count() == 1
        assert [c.source_path for c in index.search("dragon")] == ["characters/mira.md"]
        assert not Path(":memory:").exists()
    finally:
        index.close()


def test_in_memory_index_is_discarded_on_close():
    index = ChunkIndex(":memory:")
    index.initialize()
    index.index("Mira rides a dragon.", "character", "characters/mira.md", 5)
    index.close()
    with pytest.raises(ChunkIndexError):
        index.get_chunk_count()
