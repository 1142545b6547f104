"""Database schema for the chunk index."""

SCHEMA = """
-- Chunks table: one row per indexed chunk
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content TEXT NOT NULL,
    source_type TEXT NOT NULL,
    source_path TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    mtime REAL NOT NULL,
    metadata TEXT,             -- JSON object or NULL
    term_count INTEGER NOT NULL,
    created_at REAL NOT NULL
);

-- Postings table: term frequencies keyed by the shared chunk id
CREATE TABLE IF NOT EXISTS chunk_terms (
    chunk_id INTEGER NOT NULL,
    term TEXT NOT NULL,
    tf INTEGER NOT NULL,
    PRIMARY KEY (chunk_id, term)
);

-- File tracking for incremental sync
CREATE TABLE IF NOT EXISTS file_tracking (
    path TEXT PRIMARY KEY,
    mtime REAL NOT NULL,
    indexed_at REAL NOT NULL
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source_path);
CREATE INDEX IF NOT EXISTS idx_chunks_type ON chunks(source_type);
CREATE INDEX IF NOT EXISTS idx_chunk_terms_term ON chunk_terms(term);
"""
