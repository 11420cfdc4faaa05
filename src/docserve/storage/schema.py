"""Database schema for the vector store."""

SCHEMA = """
-- Documents table: one row per indexed source file
CREATE TABLE IF NOT EXISTS documents (
    path TEXT PRIMARY KEY,          -- root-relative POSIX path
    content_hash TEXT NOT NULL,
    last_modified REAL NOT NULL,
    size_bytes INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    extractor TEXT,
    chunk_count INTEGER NOT NULL DEFAULT 0,
    indexed_at TEXT
);

-- Chunks table: text slices and their embeddings, owned by a document
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_path TEXT NOT NULL,
    ordinal INTEGER NOT NULL,
    text TEXT NOT NULL,
    start_char INTEGER NOT NULL,
    end_char INTEGER NOT NULL,
    embedding BLOB NOT NULL,        -- float32 bytes
    dimension INTEGER NOT NULL,
    UNIQUE (document_path, ordinal),
    FOREIGN KEY (document_path) REFERENCES documents(path) ON DELETE CASCADE
);

-- Metadata table: embedding model, creation time, indexed root
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_path);
CREATE INDEX IF NOT EXISTS idx_chunks_dimension ON chunks(dimension);
"""
