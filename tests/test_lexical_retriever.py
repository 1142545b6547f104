from retrieval.lexical_retriever import (
    compute_bm25_score,
    extract_terms,
    highlight_snippet,
    query_terms,
    sanitize_query,
    stem,
)


def test_sanitize_strips_grammar_characters():
    assert sanitize_query('"dragon" rid*er^ (north:ern)') == ["dragon", "rider", "northern"]


def test_sanitize_drops_terms_that_become_empty():
    assert sanitize_query('dragon " * -') == ["dragon"]


def test_special_characters_only_sanitizes_to_empty():
    assert sanitize_query('"*^:()-') == []
    assert sanitize_query("   ") == []
    assert query_terms('" * ^ : ( ) -') == []


def test_query_terms_are_lowercase_and_unique():
    assert query_terms("Dragon dragon RIDER") == ["dragon", "rider"]


def test_extract_terms_splits_words():
    assert extract_terms("Mira's dragon, Ash.") == ["mira", "s", "dragon", "ash"]


def test_extract_terms_are_stemmed():
    assert extract_terms("Dragons riding") == extract_terms("dragon rides")
    assert stem("dragons") == "dragon"


def test_query_terms_stem_plurals():
    assert query_terms("Dragons dragon") == ["dragon"]


def test_bm25_rewards_frequency():
    doc_freqs = {"dragon": 2}
    once = compute_bm25_score({"dragon": 1}, doc_freqs, 10, 20, 20.0)
    thrice = compute_bm25_score({"dragon": 3}, doc_freqs, 10, 20, 20.0)
    assert thrice > once


def test_bm25_penalizes_length():
    doc_freqs = {"dragon": 2}
    short = compute_bm25_score({"dragon": 1}, doc_freqs, 10, 10, 20.0)
    long = compute_bm25_score({"dragon": 1}, doc_freqs, 10, 80, 20.0)
    assert short > long


def test_bm25_rewards_rarity():
    rare = compute_bm25_score({"dragon": 1}, {"dragon": 1}, 10, 20, 20.0)
    common = compute_bm25_score({"dragon": 1}, {"dragon": 9}, 10, 20, 20.0)
    assert rare > common


def test_bm25_empty_corpus_scores_zero():
    assert compute_bm25_score({"dragon": 1}, {"dragon": 1}, 0, 20, 20.0) == 0.0


def test_highlight_wraps_matches():
    snippet = highlight_snippet("The dragon slept.", ["dragon"], "[", "]")
    assert snippet == "The [dragon] slept."


def test_highlight_keeps_unelided_edges():
    snippet = highlight_snippet("  \"Dragons!\" she cried.", ["dragon"], "[", "]")
    assert snippet == "  \"[Dragons]!\" she cried."


def test_highlight_adds_ellipsis_where_elided():
    words = [f"w{i}" for i in range(100)]
    words[50] = "dragon"
    snippet = highlight_snippet(" ".join(words), ["dragon"], "<b>", "</b>", max_words=10)
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "<b>dragon</b>" in snippet


def test_highlight_empty_text():
    assert highlight_snippet("", ["dragon"]) == ""
