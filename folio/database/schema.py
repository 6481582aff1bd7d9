"""Database schema definition."""

import sqlite3

SCHEMA_SQL = """
-- Library items (one per distinct work)
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    title TEXT,
    subtitle TEXT,
    description TEXT,
    language TEXT,
    published_year INTEGER,
    series TEXT,
    series_index REAL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

-- Physical files; sha256 is the content identity
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    item_id TEXT REFERENCES items(id),
    path TEXT NOT NULL,
    filename TEXT NOT NULL,
    extension TEXT NOT NULL,
    mime_type TEXT,
    size_bytes INTEGER,
    sha256 TEXT,
    hash_algo TEXT DEFAULT 'sha256',
    modified_at INTEGER,
    status TEXT DEFAULT 'active',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);
CREATE INDEX IF NOT EXISTS idx_files_sha256 ON files(sha256) WHERE sha256 IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_files_item ON files(item_id);
CREATE INDEX IF NOT EXISTS idx_files_status ON files(status);

-- Identifiers are unique across the whole library
CREATE TABLE IF NOT EXISTS identifiers (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES items(id),
    type TEXT NOT NULL,
    value TEXT NOT NULL,
    source TEXT,
    confidence REAL DEFAULT 0,
    created_at INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS identifiers_type_value ON identifiers(type, value);
CREATE INDEX IF NOT EXISTS idx_identifiers_item ON identifiers(item_id);

-- Authors and their ordered link to items
CREATE TABLE IF NOT EXISTS authors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    sort_name TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_authors_name ON authors(name);

CREATE TABLE IF NOT EXISTS item_authors (
    item_id TEXT NOT NULL REFERENCES items(id),
    author_id TEXT NOT NULL REFERENCES authors(id),
    role TEXT DEFAULT 'author',
    ord INTEGER DEFAULT 0,
    PRIMARY KEY (item_id, author_id, role)
);

-- Provenance of item fields written by enrichment
CREATE TABLE IF NOT EXISTS item_field_sources (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES items(id),
    field TEXT NOT NULL,
    source TEXT NOT NULL,
    confidence REAL DEFAULT 0,
    created_at INTEGER NOT NULL
);

-- Problems found while ingesting (unreadable files, etc.)
CREATE TABLE IF NOT EXISTS issues (
    id TEXT PRIMARY KEY,
    item_id TEXT REFERENCES items(id),
    file_id TEXT REFERENCES files(id),
    type TEXT NOT NULL,
    message TEXT,
    severity TEXT DEFAULT 'info',
    created_at INTEGER NOT NULL,
    resolved_at INTEGER
);

-- Enrichment response cache
CREATE TABLE IF NOT EXISTS enrichment_sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    rate_limit_per_min INTEGER,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS enrichment_results (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES items(id),
    source_id TEXT NOT NULL REFERENCES enrichment_sources(id),
    query_type TEXT NOT NULL,
    query TEXT NOT NULL,
    response_json TEXT NOT NULL,
    confidence REAL DEFAULT 0,
    created_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_enrichment_results_lookup
    ON enrichment_results(source_id, query, created_at);

-- Scan audit log
CREATE TABLE IF NOT EXISTS scan_sessions (
    id TEXT PRIMARY KEY,
    root_path TEXT NOT NULL,
    started_at INTEGER NOT NULL,
    ended_at INTEGER,
    status TEXT NOT NULL,
    stage TEXT,
    error_message TEXT
);

CREATE TABLE IF NOT EXISTS scan_entries (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES scan_sessions(id),
    seq INTEGER NOT NULL,
    path TEXT NOT NULL,
    modified_at INTEGER,
    size_bytes INTEGER,
    sha256 TEXT,
    action TEXT NOT NULL,
    file_id TEXT REFERENCES files(id)
);

CREATE INDEX IF NOT EXISTS idx_scan_entries_session ON scan_entries(session_id, seq);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create any missing tables and indexes."""
    conn.executescript(SCHEMA_SQL)
    conn.commit()
