"""
Lexical relevance using BM25.

Story questions are keyword-heavy (character names, place names, artifacts),
which is exactly what BM25 is good at: it rewards term frequency, penalizes
long chunks and rewards terms that are rare across the project.

This module holds the pure pieces: query sanitization, term extraction,
BM25 scoring and snippet highlighting. Persistence lives in chunk_index.
"""

import logging
import math
import re
import threading
from collections import Counter
from functools import lru_cache
from typing import Dict, List, Sequence

import snowballstemmer

logger = logging.getLogger(__name__)

# Characters with special meaning in full-text query grammars.
SPECIAL_CHARS = set('"*^:()-')

DEFAULT_K1 = 1.5
DEFAULT_B = 0.75

SNIPPET_WORDS = 32
ELLIPSIS = "..."

_WORD_RE = re.compile(r"\w+")
_STEMMER = snowballstemmer.stemmer("english")
_STEMMER_LOCK = threading.Lock()


def sanitize_query(query: str) -> List[str]:
    """
    Sanitize a raw query into search terms.

    Splits on whitespace, strips query-grammar characters from each term and
    drops terms that become empty. Surviving terms are combined with AND.

    Args:
        query: Raw user query

    Returns:
        Cleaned terms; empty if nothing survives
    """
    if not query:
        return []

    terms = []
    for word in query.split():
        cleaned = "".join(ch for ch in word if ch not in SPECIAL_CHARS)
        if cleaned:
            terms.append(cleaned)
    return terms


@lru_cache(maxsize=50_000)
def stem(word: str) -> str:
    """English (Porter2) stem of a lower-cased word."""
    # Stemmer objects keep per-call state.
    with _STEMMER_LOCK:
        return _STEMMER.stemWord(word)


def extract_terms(text: str) -> List[str]:
    """
    Stemmed, lower-cased word runs, the unit stored in the postings table.

    Stemming lets "dragons" match "dragon" and "riding" match "rides".
    """
    if not text:
        return []
    return [stem(word) for word in _WORD_RE.findall(text.lower())]


def term_frequencies(text: str) -> Counter:
    return Counter(extract_terms(text))


def query_terms(query: str) -> List[str]:
    """
    Sanitize a query and normalise it into unique index terms, in order.

    A sanitized word like ``dragon's`` yields two required terms, the same
    way it was split when the content was indexed.
    """
    seen = []
    for word in sanitize_query(query):
        for term in extract_terms(word):
            if term not in seen:
                seen.append(term)
    return seen


def inverse_document_frequency(n_docs: int, doc_freq: int) -> float:
    """BM25 IDF, always positive."""
    return math.log((n_docs - doc_freq + 0.5) / (doc_freq + 0.5) + 1)


def compute_bm25_score(
    term_freqs: Dict[str, int],
    doc_freqs: Dict[str, int],
    n_docs: int,
    doc_len: int,
    avg_doc_len: float,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> float:
    """
    BM25 score of one chunk for a set of query terms.

    Args:
        term_freqs: Query term -> occurrences in this chunk
        doc_freqs: Query term -> number of chunks containing it
        n_docs: Chunks in the corpus
        doc_len: Terms in this chunk
        avg_doc_len: Average terms per chunk
        k1: Term frequency saturation parameter
        b: Length normalization parameter

    Returns:
        BM25 score (higher is better)
    """
    if n_docs <= 0:
        return 0.0

    avg_doc_len = avg_doc_len or 1.0
    score = 0.0
    for term, tf in term_freqs.items():
        if tf <= 0:
            continue
        idf = inverse_document_frequency(n_docs, doc_freqs.get(term, 0))
        numerator = tf * (k1 + 1)
        denominator = tf + k1 * (1 - b + b * (doc_len / avg_doc_len))
        score += idf * (numerator / denominator)

    return score


def highlight_snippet(
    text: str,
    terms: Sequence[str],
    mark_start: str = "**",
    mark_end: str = "**",
    max_words: int = SNIPPET_WORDS,
) -> str:
    """
    Build a bounded excerpt around the densest run of matched terms.

    Matched words are wrapped in the markers; an ellipsis marks each side
    where text was elided. ``terms`` are stemmed index terms, as returned
    by query_terms.
    """
    words = list(_WORD_RE.finditer(text))
    if not words:
        return ""

    wanted = set(terms)
    hits = [1 if stem(w.group(0).lower()) in wanted else 0 for w in words]

    max_words = max(1, max_words)
    best_start, best_hits = 0, -1
    window_hits = sum(hits[:max_words])
    for start in range(0, max(1, len(words) - max_words + 1)):
        if start > 0:
            window_hits += hits[start + max_words - 1] - hits[start - 1]
        if window_hits > best_hits:
            best_start, best_hits = start, window_hits
    best_end = min(len(words), best_start + max_words)

    parts = []
    cursor = words[best_start].start()
    for i in range(best_start, best_end):
        match = words[i]
        parts.append(text[cursor : match.start()])
        if hits[i]:
            parts.append(f"{mark_start}{match.group(0)}{mark_end}")
        else:
            parts.append(match.group(0))
        cursor = match.end()

    if best_end == len(words):
        parts.append(text[cursor:])

    snippet = "".join(parts)
    if best_start > 0:
        snippet = ELLIPSIS + snippet
    else:
        snippet = text[: words[0].start()] + snippet
    if best_end < len(words):
        snippet = snippet + ELLIPSIS
    return snippet
