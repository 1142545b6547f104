"""
SQLite-backed chunk index with BM25 ranking.

Writes follow single-writer / many-reader discipline: every write runs in
one ``BEGIN IMMEDIATE`` transaction and rolls back completely on error, and
every read runs in one read transaction, so readers never observe a
half-applied write. Each operation opens its own connection, which makes a
single ChunkIndex safe to share between threads. An in-memory index holds
one connection and takes a lock around each operation instead.
"""

import json
import logging
import sqlite3
import threading
import time
from collections import defaultdict
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .lexical_retriever import (
    DEFAULT_B,
    DEFAULT_K1,
    compute_bm25_score,
    highlight_snippet,
    query_terms,
    term_frequencies,
)
from .models import Chunk, HighlightedChunk, SourceType, utc_now
from .schema import SCHEMA

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20
MEMORY_PATH = ":memory:"


class ChunkIndexError(Exception):
    """Raised when index storage fails. Any write in progress was rolled back."""

    pass


def _to_timestamp(value: Optional[datetime]) -> float:
    return (value or utc_now()).timestamp()


def _from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class ChunkIndex:
    """
    Persisted, queryable store of content chunks.

    Usage:
        index = ChunkIndex("project/.story/index.db")
        index.initialize()
        index.index("Mira is a dragon rider.", "character", "characters/mira.md", 7)
        results = index.search("dragon rider", limit=5)

    ``ChunkIndex(":memory:")`` keeps the index in one private in-memory
    connection, for tests and throwaway sessions. Operations on it are
    serialized; call close() to discard it.
    """

    def __init__(
        self,
        path: Path | str,
        k1: float = DEFAULT_K1,
        b: float = DEFAULT_B,
        timeout: float = 5.0,
    ):
        """
        Args:
            path: SQLite database file
            k1: BM25 term frequency saturation
            b: BM25 length normalization
            timeout: Seconds to wait for a competing writer
        """
        self.path = Path(path)
        self.k1 = k1
        self.b = b
        self.timeout = timeout
        self.in_memory = str(path) == MEMORY_PATH
        self._shared: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock() if self.in_memory else nullcontext()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            MEMORY_PATH if self.in_memory else self.path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _connect(self) -> sqlite3.Connection:
        try:
            if not self.in_memory:
                return self._open()
            if self._shared is None:
                self._shared = self._open()
            return self._shared
        except sqlite3.Error as e:
            raise ChunkIndexError(f"failed to open index {self.path}: {e}") from e

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._shared:
            conn.close()

    @contextmanager
    def _transaction(self, action: str, write: bool = False) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction; roll back on any error."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise ChunkIndexError(f"{action} failed: {e}") from e
            except Exception:
                self._rollback(conn)
                raise
            finally:
                self._release(conn)

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def initialize(self) -> None:
        """Create schema if not exists."""
        if not self.in_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = self._connect()
            try:
                if not self.in_memory:
                    conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise ChunkIndexError(f"failed to initialize index: {e}") from e
            finally:
                self._release(conn)

    def close(self) -> None:
        """Drop the in-memory database, if any. File-backed indexes hold nothing open."""
        with self._lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None

    # Writes

    def _insert_chunk(self, conn: sqlite3.Connection, chunk: Chunk, now: float) -> int:
        """Insert one chunk and its postings inside an open transaction."""
        freqs = term_frequencies(chunk.content)
        cursor = conn.execute(
            """INSERT INTO chunks
               (content, source_type, source_path, token_count, mtime,
                metadata, term_count, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                chunk.content,
                chunk.source_type.value,
                chunk.source_path,
                max(0, chunk.token_count),
                _to_timestamp(chunk.mtime),
                json.dumps(chunk.metadata) if chunk.metadata else None,
                sum(freqs.values()),
                now,
            ),
        )
        chunk_id = cursor.lastrowid
        conn.executemany(
            "INSERT INTO chunk_terms (chunk_id, term, tf) VALUES (?, ?, ?)",
            [(chunk_id, term, tf) for term, tf in freqs.items()],
        )
        return chunk_id

    @staticmethod
    def _delete_source(conn: sqlite3.Connection, source_path: str) -> int:
        conn.execute(
            """DELETE FROM chunk_terms WHERE chunk_id IN
               (SELECT id FROM chunks WHERE source_path = ?)""",
            (source_path,),
        )
        cursor = conn.execute("DELETE FROM chunks WHERE source_path = ?", (source_path,))
        return cursor.rowcount

    @staticmethod
    def _track(conn: sqlite3.Connection, path: str, mtime: datetime, now: float) -> None:
        conn.execute(
            """INSERT OR REPLACE INTO file_tracking (path, mtime, indexed_at)
               VALUES (?, ?, ?)""",
            (path, _to_timestamp(mtime), now),
        )

    def index(
        self,
        content: str,
        source_type: SourceType | str,
        source_path: str,
        token_count: int,
        mtime: Optional[datetime] = None,
        metadata: Optional[Dict] = None,
    ) -> int:
        """Store one chunk and return its new id."""
        chunk = Chunk(
            content=content,
            source_type=source_type,
            source_path=source_path,
            token_count=token_count,
            mtime=mtime or utc_now(),
            metadata=dict(metadata or {}),
        )
        with self._transaction(f"index {source_path}", write=True) as conn:
            return self._insert_chunk(conn, chunk, time.time())

    def delete_by_source(self, source_path: str) -> int:
        """Remove all chunks (and tracking) for one source path."""
        with self._transaction(f"delete {source_path}", write=True) as conn:
            deleted = self._delete_source(conn, source_path)
            conn.execute("DELETE FROM file_tracking WHERE path = ?", (source_path,))
        logger.debug(f"Deleted {deleted} chunks for {source_path}")
        return deleted

    def replace_source(
        self,
        source_path: str,
        chunks: Iterable[Chunk],
        mtime: Optional[datetime] = None,
    ) -> List[int]:
        """
        Replace every chunk of one source path in a single transaction.

        Args:
            source_path: Path whose chunks are replaced
            chunks: New chunks; each must belong to source_path
            mtime: If given, recorded as the path's tracked modification time

        Returns:
            Ids of the inserted chunks
        """
        chunks = list(chunks)
        for chunk in chunks:
            if chunk.source_path != source_path:
                raise ValueError(
                    f"chunk from {chunk.source_path} passed to replace_source({source_path})"
                )

        now = time.time()
        with self._transaction(f"replace {source_path}", write=True) as conn:
            self._delete_source(conn, source_path)
            ids = [self._insert_chunk(conn, chunk, now) for chunk in chunks]
            if mtime is not None:
                self._track(conn, source_path, mtime, now)
        return ids

    def clear(self) -> None:
        """Remove all chunks and tracking."""
        with self._transaction("clear", write=True) as conn:
            conn.execute("DELETE FROM chunk_terms")
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM file_tracking")

    def reindex(
        self,
        chunks: Iterable[Chunk],
        tracked: Optional[Dict[str, datetime]] = None,
    ) -> int:
        """
        Atomically replace the entire index.

        Clear and bulk insert happen in one transaction: either every chunk
        is indexed or the previous index is left untouched.

        Args:
            chunks: The complete new set of chunks
            tracked: Optional path -> mtime map replacing file tracking

        Returns:
            Number of chunks indexed
        """
        chunks = list(chunks)
        now = time.time()
        with self._transaction("reindex", write=True) as conn:
            conn.execute("DELETE FROM chunk_terms")
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM file_tracking")
            for chunk in chunks:
                self._insert_chunk(conn, chunk, now)
            for path, mtime in (tracked or {}).items():
                self._track(conn, path, mtime, now)

        logger.info(f"Reindexed {len(chunks)} chunks")
        return len(chunks)

    # Reads

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Chunk]:
        """
        Ranked lexical search, best match first.

        A query that sanitizes to nothing returns an empty list.
        """
        return [chunk for chunk, _ in self._ranked(query, limit)]

    def search_with_filter(
        self,
        query: str,
        source_type: SourceType | str,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[Chunk]:
        """Ranked search restricted to one source type."""
        source_type = SourceType(source_type)
        return [chunk for chunk, _ in self._ranked(query, limit, source_type)]

    def search_with_highlight(
        self,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        mark_start: str = "**",
        mark_end: str = "**",
    ) -> List[HighlightedChunk]:
        """Ranked search where each result carries a highlighted excerpt."""
        mark_start = mark_start or "**"
        mark_end = mark_end or "**"
        return [
            HighlightedChunk(
                chunk=chunk,
                snippet=highlight_snippet(chunk.content, terms, mark_start, mark_end),
            )
            for chunk, terms in self._ranked(query, limit)
        ]

    def _ranked(
        self,
        query: str,
        limit: int,
        source_type: Optional[SourceType] = None,
    ) -> List[Tuple[Chunk, List[str]]]:
        terms = query_terms(query)
        if not terms:
            return []
        if limit <= 0:
            limit = DEFAULT_SEARCH_LIMIT

        placeholders = ",".join("?" * len(terms))
        with self._transaction("search") as conn:
            stats = conn.execute(
                "SELECT COUNT(*) AS n, AVG(term_count) AS avg_len FROM chunks"
            ).fetchone()
            n_docs = stats["n"]
            if n_docs == 0:
                return []

            doc_freqs = {
                row["term"]: row["df"]
                for row in conn.execute(
                    f"""SELECT term, COUNT(*) AS df FROM chunk_terms
                        WHERE term IN ({placeholders}) GROUP BY term""",
                    terms,
                )
            }
            # Every term is required
            if len(doc_freqs) < len(terms):
                return []

            sql = f"""
                SELECT c.*, t.term AS matched_term, t.tf AS matched_tf
                FROM chunks c
                JOIN chunk_terms t ON t.chunk_id = c.id
                WHERE t.term IN ({placeholders})
                  AND c.id IN (
                      SELECT chunk_id FROM chunk_terms
                      WHERE term IN ({placeholders})
                      GROUP BY chunk_id HAVING COUNT(*) = ?
                  )"""
            params: list = [*terms, *terms, len(terms)]
            if source_type is not None:
                sql += " AND c.source_type = ?"
                params.append(source_type.value)

            rows: Dict[int, sqlite3.Row] = {}
            freqs: Dict[int, Dict[str, int]] = defaultdict(dict)
            for row in conn.execute(sql, params):
                rows[row["id"]] = row
                freqs[row["id"]][row["matched_term"]] = row["matched_tf"]

        scored = []
        for chunk_id, row in rows.items():
            score = compute_bm25_score(
                freqs[chunk_id],
                doc_freqs,
                n_docs,
                row["term_count"],
                stats["avg_len"],
                k1=self.k1,
                b=self.b,
            )
            scored.append((score, chunk_id))

        # Best first; equal scores keep insertion order
        scored.sort(key=lambda item: (-item[0], item[1]))

        return [
            (self._row_to_chunk(rows[chunk_id], score), terms)
            for score, chunk_id in scored[:limit]
        ]

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row, score: Optional[float] = None) -> Chunk:
        return Chunk(
            id=row["id"],
            content=row["content"],
            source_type=SourceType(row["source_type"]),
            source_path=row["source_path"],
            token_count=row["token_count"],
            mtime=_from_timestamp(row["mtime"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            score=score,
        )

    def get_chunk(self, chunk_id: int) -> Optional[Chunk]:
        """Fetch a chunk by id, or None."""
        with self._transaction("get chunk") as conn:
            row = conn.execute("SELECT * FROM chunks WHERE id = ?", (chunk_id,)).fetchone()
        return self._row_to_chunk(row) if row else None

    def get_chunk_count(self) -> int:
        with self._transaction("count chunks") as conn:
            return conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def get_chunk_count_by_type(self, source_type: SourceType | str) -> int:
        source_type = SourceType(source_type)
        with self._transaction("count chunks by type") as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE source_type = ?",
                (source_type.value,),
            ).fetchone()[0]

    def get_tracked_files(self) -> Dict[str, float]:
        """Tracked path -> modification timestamp recorded at index time."""
        with self._transaction("list tracked files") as conn:
            return {
                row["path"]: row["mtime"]
                for row in conn.execute("SELECT path, mtime FROM file_tracking")
            }

    def get_stats(self) -> Dict:
        """Get index statistics."""
        with self._transaction("stats") as conn:
            stats = conn.execute(
                "SELECT COUNT(*) AS n, AVG(term_count) AS avg_len FROM chunks"
            ).fetchone()
            unique_terms = conn.execute(
                "SELECT COUNT(DISTINCT term) FROM chunk_terms"
            ).fetchone()[0]
        return {
            "total_chunks": stats["n"],
            "unique_terms": unique_terms,
            "avg_chunk_terms": stats["avg_len"] or 0.0,
        }
