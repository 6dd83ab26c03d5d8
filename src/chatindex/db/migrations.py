"""Id-keyed migration runner for the chatindex schema.

All pending migrations run inside a single transaction. A migration whose id
is already recorded in schema_migrations is skipped, so a restart after a
failed bootstrap simply retries the pending ones.
"""

from __future__ import annotations

import sqlite3

from chatindex.db.connection import transaction
from chatindex.timeutil import now_iso

# schema_migrations is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id          TEXT PRIMARY KEY,
    applied_at  TEXT NOT NULL
)
"""

_V1_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS imports (
        id                   TEXT PRIMARY KEY,
        source_label         TEXT NOT NULL,
        file_path            TEXT NOT NULL,
        file_hash            TEXT NOT NULL,
        status               TEXT NOT NULL,
        imported_at          TEXT NOT NULL,
        completed_at         TEXT,
        raw_conversations    INTEGER NOT NULL DEFAULT 0,
        parsed_conversations INTEGER NOT NULL DEFAULT 0,
        parsed_messages      INTEGER NOT NULL DEFAULT 0,
        parsed_chunks        INTEGER NOT NULL DEFAULT 0,
        skipped_messages     INTEGER NOT NULL DEFAULT 0,
        error_text           TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_imports_file_hash ON imports(file_hash)",
    "CREATE INDEX IF NOT EXISTS idx_imports_status ON imports(status)",
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id               TEXT PRIMARY KEY,
        title            TEXT NOT NULL,
        created_at       TEXT NOT NULL,
        updated_at       TEXT NOT NULL,
        source_import_id TEXT NOT NULL REFERENCES imports(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_conversations_created_at ON conversations(created_at)",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id               TEXT PRIMARY KEY,
        conversation_id  TEXT NOT NULL REFERENCES conversations(id),
        role             TEXT NOT NULL,
        sender           TEXT NOT NULL,
        created_at       TEXT NOT NULL,
        position         INTEGER NOT NULL,
        content          TEXT NOT NULL,
        source_import_id TEXT NOT NULL REFERENCES imports(id)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_conversation_position
        ON messages(conversation_id, position)
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_messages_role ON messages(role)",
    """
    CREATE TABLE IF NOT EXISTS chunks (
        id               TEXT PRIMARY KEY,
        conversation_id  TEXT NOT NULL REFERENCES conversations(id),
        message_id       TEXT NOT NULL REFERENCES messages(id),
        chunk_index      INTEGER NOT NULL,
        role             TEXT NOT NULL,
        created_at       TEXT NOT NULL,
        content          TEXT NOT NULL,
        token_count      INTEGER NOT NULL,
        source_import_id TEXT NOT NULL REFERENCES imports(id),
        metadata_json    TEXT,
        UNIQUE (message_id, chunk_index)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunks_conversation_id ON chunks(conversation_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_message_id ON chunks(message_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_created_at ON chunks(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_role ON chunks(role)",
    """
    CREATE TABLE IF NOT EXISTS chunk_embeddings (
        chunk_id    TEXT PRIMARY KEY REFERENCES chunks(id),
        model       TEXT NOT NULL,
        dimensions  INTEGER NOT NULL,
        vector      BLOB NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunk_embeddings_model ON chunk_embeddings(model)",
    """
    CREATE TABLE IF NOT EXISTS search_logs (
        id            TEXT PRIMARY KEY,
        query         TEXT NOT NULL,
        mode          TEXT NOT NULL,
        top_k         INTEGER NOT NULL,
        filters_json  TEXT,
        latency_ms    INTEGER NOT NULL,
        result_count  INTEGER NOT NULL,
        created_at    TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_search_logs_created_at ON search_logs(created_at)",
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS chunk_fts USING fts5(
        chunk_id UNINDEXED,
        conversation_id UNINDEXED,
        message_id UNINDEXED,
        role UNINDEXED,
        created_at UNINDEXED,
        content,
        tokenize = 'unicode61 remove_diacritics 2'
    )
    """,
)

# Append-only. Each entry: (id: str, statements: tuple[str, ...]).
MIGRATIONS: list[tuple[str, tuple[str, ...]]] = [
    ("001_init_schema", _V1_STATEMENTS),
]


def applied_migration_ids(conn: sqlite3.Connection) -> set[str]:
    """Return the ids already recorded in schema_migrations."""
    return {row["id"] for row in conn.execute("SELECT id FROM schema_migrations")}


def run_migrations(
    conn: sqlite3.Connection,
    migrations: list[tuple[str, tuple[str, ...]]] | None = None,
) -> list[str]:
    """Apply all pending migrations in list order inside one transaction.

    Idempotent: safe to call on a database at any state.

    Args:
        conn: Open connection in autocommit mode.
        migrations: Override the migration list (tests only).

    Returns:
        Ids of the migrations applied by this call (empty when up to date).

    Raises:
        sqlite3.Error: If any statement fails. Nothing from this call is kept.
    """
    pending = MIGRATIONS if migrations is None else migrations
    applied: list[str] = []

    with transaction(conn):
        conn.execute(_CREATE_SCHEMA_MIGRATIONS)
        seen = applied_migration_ids(conn)
        for migration_id, statements in pending:
            if migration_id in seen:
                continue
            for sql in statements:
                conn.execute(sql)
            conn.execute(
                "INSERT INTO schema_migrations (id, applied_at) VALUES (?, ?)",
                (migration_id, now_iso()),
            )
            applied.append(migration_id)

    return applied
