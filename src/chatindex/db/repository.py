"""Repository pattern for all chatindex database operations.

Single interface for: imports, conversations, messages, chunks (+ FTS5
mirror), chunk embeddings, search logs, and the derived store reads
(full-text rebuild, overview statistics).

The connection runs in autocommit mode: each method is atomic on its own,
and callers group several calls with chatindex.db.connection.transaction().
"""

from __future__ import annotations

import json
import sqlite3
import uuid

from chatindex.db.connection import transaction
from chatindex.db.models import (
    Chunk,
    Conversation,
    ImportRecord,
    Message,
    OverviewStats,
    SearchFilters,
)
from chatindex.db.vectors import deserialize_vector, serialize_vector
from chatindex.timeutil import now_iso

_IMPORT_COLUMNS = """
    id, source_label, file_path, file_hash, status, imported_at, completed_at,
    raw_conversations, parsed_conversations, parsed_messages, parsed_chunks,
    skipped_messages, error_text
"""

_MESSAGE_COLUMNS = (
    "id, conversation_id, role, sender, created_at, position, content, source_import_id"
)

_CHUNK_COLUMNS = """
    c.id, c.conversation_id, c.message_id, c.chunk_index, c.role, c.created_at,
    c.content, c.token_count, c.source_import_id, c.metadata_json
"""


class Repository:
    """Data access layer for all chatindex database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see chatindex.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def add_import(self, record: ImportRecord) -> None:
        """Insert a new import record (normally in 'processing' state)."""
        self._conn.execute(
            """
            INSERT INTO imports (
                id, source_label, file_path, file_hash, status, imported_at,
                raw_conversations, parsed_conversations, parsed_messages,
                parsed_chunks, skipped_messages
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.source_label,
                record.file_path,
                record.file_hash,
                record.status,
                record.imported_at or now_iso(),
                record.raw_conversations,
                record.parsed_conversations,
                record.parsed_messages,
                record.parsed_chunks,
                record.skipped_messages,
            ),
        )

    def get_import(self, import_id: str) -> ImportRecord | None:
        row = self._conn.execute(
            f"SELECT {_IMPORT_COLUMNS} FROM imports WHERE id = ?", (import_id,)
        ).fetchone()
        return _row_to_import(row) if row else None

    def find_completed_import(self, file_hash: str) -> ImportRecord | None:
        """Return the most recent completed import of *file_hash*, or None."""
        row = self._conn.execute(
            f"""
            SELECT {_IMPORT_COLUMNS} FROM imports
            WHERE file_hash = ? AND status = 'completed'
            ORDER BY imported_at DESC
            LIMIT 1
            """,
            (file_hash,),
        ).fetchone()
        return _row_to_import(row) if row else None

    def complete_import(
        self,
        import_id: str,
        *,
        raw_conversations: int,
        parsed_conversations: int,
        parsed_messages: int,
        parsed_chunks: int,
        skipped_messages: int,
    ) -> None:
        """Move an import to 'completed' and record its final counts."""
        self._conn.execute(
            """
            UPDATE imports
            SET status = 'completed',
                completed_at = ?,
                raw_conversations = ?,
                parsed_conversations = ?,
                parsed_messages = ?,
                parsed_chunks = ?,
                skipped_messages = ?,
                error_text = NULL
            WHERE id = ?
            """,
            (
                now_iso(),
                raw_conversations,
                parsed_conversations,
                parsed_messages,
                parsed_chunks,
                skipped_messages,
                import_id,
            ),
        )

    def fail_import(self, import_id: str, error_text: str) -> None:
        """Move an import to 'failed' and keep the captured error text."""
        self._conn.execute(
            "UPDATE imports SET status = 'failed', completed_at = ?, error_text = ? WHERE id = ?",
            (now_iso(), error_text, import_id),
        )

    def latest_import(self) -> ImportRecord | None:
        row = self._conn.execute(
            f"SELECT {_IMPORT_COLUMNS} FROM imports ORDER BY imported_at DESC LIMIT 1"
        ).fetchone()
        return _row_to_import(row) if row else None

    # ------------------------------------------------------------------
    # Conversations + messages
    # ------------------------------------------------------------------

    def upsert_conversation(self, conversation: Conversation) -> None:
        """Insert a conversation or overwrite title/timestamps/import of an existing id."""
        self._conn.execute(
            """
            INSERT INTO conversations (id, title, created_at, updated_at, source_import_id)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                created_at = excluded.created_at,
                updated_at = excluded.updated_at,
                source_import_id = excluded.source_import_id
            """,
            (
                conversation.id,
                conversation.title,
                conversation.created_at,
                conversation.updated_at,
                conversation.source_import_id,
            ),
        )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self._conn.execute(
            """
            SELECT id, title, created_at, updated_at, source_import_id
            FROM conversations WHERE id = ?
            """,
            (conversation_id,),
        ).fetchone()
        if row is None:
            return None
        return Conversation(
            id=row["id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            source_import_id=row["source_import_id"],
        )

    def add_message(self, message: Message) -> None:
        self._conn.execute(
            f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.conversation_id,
                message.role,
                message.sender,
                message.created_at,
                message.position,
                message.content,
                message.source_import_id,
            ),
        )

    def get_message(self, message_id: str) -> Message | None:
        row = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
        return _row_to_message(row) if row else None

    def list_messages(
        self,
        conversation_id: str,
        start: int | None = None,
        end: int | None = None,
    ) -> list[Message]:
        """Return messages of a conversation in position order.

        Args:
            conversation_id: Parent conversation.
            start: Inclusive lower position bound (None = unbounded).
            end: Inclusive upper position bound (None = unbounded).
        """
        sql = f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ?"
        params: list[object] = [conversation_id]
        if start is not None:
            sql += " AND position >= ?"
            params.append(start)
        if end is not None:
            sql += " AND position <= ?"
            params.append(end)
        sql += " ORDER BY position ASC"
        return [_row_to_message(r) for r in self._conn.execute(sql, params).fetchall()]

    def delete_conversation_content(self, conversation_id: str) -> int:
        """Delete chunks (+ FTS rows + embeddings) and messages of a conversation.

        The conversation row itself is kept. Returns the number of chunks removed.
        """
        chunk_ids = [
            r["id"]
            for r in self._conn.execute(
                "SELECT id FROM chunks WHERE conversation_id = ?", (conversation_id,)
            ).fetchall()
        ]
        for chunk_id in chunk_ids:
            self._conn.execute("DELETE FROM chunk_fts WHERE chunk_id = ?", (chunk_id,))
            self._conn.execute("DELETE FROM chunk_embeddings WHERE chunk_id = ?", (chunk_id,))
        self._conn.execute("DELETE FROM chunks WHERE conversation_id = ?", (conversation_id,))
        self._conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
        return len(chunk_ids)

    # ------------------------------------------------------------------
    # Chunks + FTS5 mirror
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> None:
        """Insert chunk + matching FTS5 row."""
        self._conn.execute(
            """
            INSERT INTO chunks (
                id, conversation_id, message_id, chunk_index, role, created_at,
                content, token_count, source_import_id, metadata_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.conversation_id,
                chunk.message_id,
                chunk.chunk_index,
                chunk.role,
                chunk.created_at,
                chunk.content,
                chunk.token_count,
                chunk.source_import_id,
                chunk.metadata,
            ),
        )
        self._conn.execute(
            """
            INSERT INTO chunk_fts (chunk_id, conversation_id, message_id, role, created_at, content)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.conversation_id,
                chunk.message_id,
                chunk.role,
                chunk.created_at,
                chunk.content,
            ),
        )

    def list_chunks_by_message(self, message_id: str) -> list[Chunk]:
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.message_id = ? ORDER BY c.chunk_index",
            (message_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def fts_chunk_ids(self) -> set[str]:
        """Return every chunk id present in the FTS5 mirror."""
        return {r["chunk_id"] for r in self._conn.execute("SELECT chunk_id FROM chunk_fts")}

    def rebuild_fts(self) -> int:
        """Re-create the FTS5 mirror from the chunks table.

        Delete-all then bulk re-insert in one transaction.

        Returns:
            Number of chunk rows re-indexed.
        """
        with transaction(self._conn):
            total = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
            self._conn.execute("DELETE FROM chunk_fts")
            self._conn.execute(
                """
                INSERT INTO chunk_fts (chunk_id, conversation_id, message_id, role, created_at, content)
                SELECT id, conversation_id, message_id, role, created_at, content FROM chunks
                """
            )
        return total

    def search_fts(
        self,
        fts_query: str,
        filters: SearchFilters | None = None,
        limit: int = 10,
    ) -> list[tuple[Chunk, str, float]]:
        """BM25 full-text search. Returns (chunk, conversation_title, bm25) best-first.

        bm25() returns negative values; lower (more negative) = better match.
        *fts_query* must already be a valid FTS5 MATCH expression.
        """
        params: list[object] = [fts_query]
        filter_sql = _filter_sql(filters, params)
        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, conv.title AS conversation_title,
                   bm25(chunk_fts) AS bm25_score
            FROM chunk_fts
            JOIN chunks c ON c.id = chunk_fts.chunk_id
            JOIN conversations conv ON conv.id = c.conversation_id
            WHERE chunk_fts MATCH ?
            {filter_sql}
            ORDER BY bm25_score
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [(_row_to_chunk(r), r["conversation_title"], r["bm25_score"]) for r in rows]

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def list_chunks_missing_embeddings(self, limit: int) -> list[tuple[str, str]]:
        """Return up to *limit* (chunk_id, content) pairs that have no embedding."""
        rows = self._conn.execute(
            """
            SELECT c.id AS chunk_id, c.content AS content
            FROM chunks c
            LEFT JOIN chunk_embeddings e ON e.chunk_id = c.id
            WHERE e.chunk_id IS NULL
            ORDER BY c.rowid
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [(r["chunk_id"], r["content"]) for r in rows]

    def count_missing_embeddings(self) -> int:
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM chunks c
            LEFT JOIN chunk_embeddings e ON e.chunk_id = c.id
            WHERE e.chunk_id IS NULL
            """
        ).fetchone()[0]

    def upsert_embeddings(
        self,
        model: str,
        items: list[tuple[str, list[float]]],
    ) -> None:
        """Persist (chunk_id, vector) pairs in one transaction.

        An existing row for the same chunk is overwritten (model change).
        """
        updated_at = now_iso()
        with transaction(self._conn):
            for chunk_id, vector in items:
                self._conn.execute(
                    """
                    INSERT INTO chunk_embeddings (chunk_id, model, dimensions, vector, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(chunk_id) DO UPDATE SET
                        model = excluded.model,
                        dimensions = excluded.dimensions,
                        vector = excluded.vector,
                        updated_at = excluded.updated_at
                    """,
                    (chunk_id, model, len(vector), serialize_vector(vector), updated_at),
                )

    def get_embedding(self, chunk_id: str) -> tuple[str, list[float]] | None:
        """Return (model, vector) stored for *chunk_id*, or None."""
        row = self._conn.execute(
            "SELECT model, vector FROM chunk_embeddings WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        return (row["model"], deserialize_vector(row["vector"])) if row else None

    def count_embeddings(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM chunk_embeddings").fetchone()[0]

    def embedding_signatures(self) -> set[tuple[str, int]]:
        """Return the distinct (model, dimensions) pairs currently stored."""
        return {
            (r["model"], r["dimensions"])
            for r in self._conn.execute(
                "SELECT DISTINCT model, dimensions FROM chunk_embeddings"
            ).fetchall()
        }

    def delete_all_embeddings(self) -> int:
        """Delete every embedding row. Returns the number of rows deleted."""
        return self._conn.execute("DELETE FROM chunk_embeddings").rowcount

    def embedding_candidates(
        self,
        model: str,
        filters: SearchFilters | None = None,
        limit: int = 300,
    ) -> list[tuple[Chunk, str, list[float]]]:
        """Return a bounded pool of embedded chunks for *model* matching *filters*.

        Each item is (chunk, conversation_title, vector).
        """
        params: list[object] = [model]
        filter_sql = _filter_sql(filters, params)
        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, conv.title AS conversation_title, e.vector AS vector
            FROM chunk_embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN conversations conv ON conv.id = c.conversation_id
            WHERE e.model = ?
            {filter_sql}
            ORDER BY c.rowid
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [
            (_row_to_chunk(r), r["conversation_title"], deserialize_vector(r["vector"]))
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Search logs
    # ------------------------------------------------------------------

    def add_search_log(
        self,
        *,
        mode: str,
        query: str,
        top_k: int,
        filters: SearchFilters | None,
        latency_ms: float,
        result_count: int,
    ) -> None:
        """Append one search invocation to search_logs."""
        self._conn.execute(
            """
            INSERT INTO search_logs (id, query, mode, top_k, filters_json, latency_ms, result_count, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()),
                query,
                mode,
                top_k,
                json.dumps(filters.as_dict() if filters else {}),
                round(latency_ms),
                result_count,
                now_iso(),
            ),
        )

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    def overview_stats(self) -> OverviewStats:
        """Entity counts plus the most recent import record."""

        def _count(table: str) -> int:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608

        return OverviewStats(
            conversations=_count("conversations"),
            messages=_count("messages"),
            chunks=_count("chunks"),
            embeddings=_count("chunk_embeddings"),
            latest_import=self.latest_import(),
        )


# ------------------------------------------------------------------
# Filter + row → model helpers
# ------------------------------------------------------------------


def _filter_sql(filters: SearchFilters | None, params: list[object]) -> str:
    """Append filter params and return the matching ``AND ...`` clause (or '')."""
    if filters is None:
        return ""
    clauses: list[str] = []
    if filters.conversation_id:
        clauses.append("c.conversation_id = ?")
        params.append(filters.conversation_id)
    if filters.role:
        clauses.append("c.role = ?")
        params.append(filters.role)
    if filters.date_from:
        clauses.append("c.created_at >= ?")
        params.append(filters.date_from)
    if filters.date_to:
        clauses.append("c.created_at <= ?")
        params.append(filters.date_to)
    if not clauses:
        return ""
    return " AND " + " AND ".join(clauses)


def _row_to_import(row: sqlite3.Row) -> ImportRecord:
    return ImportRecord(
        id=row["id"],
        source_label=row["source_label"],
        file_path=row["file_path"],
        file_hash=row["file_hash"],
        status=row["status"],
        imported_at=row["imported_at"],
        completed_at=row["completed_at"],
        raw_conversations=row["raw_conversations"],
        parsed_conversations=row["parsed_conversations"],
        parsed_messages=row["parsed_messages"],
        parsed_chunks=row["parsed_chunks"],
        skipped_messages=row["skipped_messages"],
        error_text=row["error_text"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        sender=row["sender"],
        created_at=row["created_at"],
        position=row["position"],
        content=row["content"],
        source_import_id=row["source_import_id"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        conversation_id=row["conversation_id"],
        message_id=row["message_id"],
        chunk_index=row["chunk_index"],
        role=row["role"],
        created_at=row["created_at"],
        content=row["content"],
        token_count=row["token_count"],
        source_import_id=row["source_import_id"],
        metadata=row["metadata_json"] or "{}",
    )
