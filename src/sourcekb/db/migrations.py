"""Forward-only migration runner for the knowledge-base schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# Millisecond timestamps so "newest first" ordering is stable within a second.
_NOW = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

_V1_SQL = f"""
CREATE TABLE IF NOT EXISTS sources (
    id               TEXT PRIMARY KEY,
    owner_id         TEXT NOT NULL,
    client_id        TEXT,
    kind             TEXT NOT NULL,
    name             TEXT NOT NULL,
    origin           TEXT,
    file_type        TEXT,
    raw_content      BLOB,
    content          TEXT,
    summary          TEXT,
    status           TEXT NOT NULL DEFAULT 'pending',
    last_error       TEXT,
    exclude_from_rag INTEGER NOT NULL DEFAULT 0,
    category         TEXT,
    metadata         TEXT NOT NULL DEFAULT '{{}}',
    created_at       TEXT NOT NULL DEFAULT {_NOW},
    updated_at       TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_sources_owner_client ON sources(owner_id, client_id);

CREATE TABLE IF NOT EXISTS chunks (
    id               TEXT PRIMARY KEY,
    source_id        TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    owner_id         TEXT NOT NULL,
    client_id        TEXT,
    chunk_index      INTEGER NOT NULL,
    start_char       INTEGER NOT NULL,
    end_char         INTEGER NOT NULL,
    text             TEXT NOT NULL,
    embedding        BLOB,
    embedding_model  TEXT,
    created_at       TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source_id, chunk_index);
CREATE INDEX IF NOT EXISTS idx_chunks_owner_client ON chunks(owner_id, client_id);
"""

_V2_SQL = f"""
CREATE TABLE IF NOT EXISTS insights (
    id               TEXT PRIMARY KEY,
    source_id        TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    owner_id         TEXT NOT NULL,
    client_id        TEXT,
    field_name       TEXT NOT NULL,
    suggested_value  TEXT NOT NULL,
    reasoning        TEXT NOT NULL DEFAULT '',
    confidence       REAL NOT NULL,
    status           TEXT NOT NULL DEFAULT 'pending',
    created_at       TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_insights_source ON insights(source_id);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
