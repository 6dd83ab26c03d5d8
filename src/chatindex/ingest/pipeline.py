"""Ingest pipeline: hash → dedup → parse → chunk → transactional write.

Per file:
  1. SHA-256 of the file bytes. A completed import with the same hash makes
     the call a no-op that reports the earlier import's counts.
  2. An import record is written in 'processing' state (committed on its own
     so it survives a failed ingest).
  3. The export is parsed and, inside one transaction, every conversation is
     upserted, its previous messages/chunks/FTS rows/embeddings are removed,
     and its messages and chunks are re-inserted.
  4. The import record moves to 'completed' with final counts, or to
     'failed' with the error text before the error is re-raised.
"""

from __future__ import annotations

import hashlib
import json
import time
import traceback
import uuid
from dataclasses import dataclass
from pathlib import Path

from chatindex.db.connection import transaction
from chatindex.db.models import Chunk, Conversation, ImportRecord
from chatindex.db.repository import Repository
from chatindex.ingest.chunker import TextChunker
from chatindex.ingest.parser import ParsedConversation, parse_export_file

DEFAULT_SOURCE_LABEL = "manual-upload"


@dataclass
class IngestResult:
    import_id: str
    source_label: str
    file_path: str
    file_hash: str
    skipped_as_duplicate: bool
    conversations: int
    messages: int
    chunks: int
    duration_ms: int


def compute_file_hash(path: Path | str) -> str:
    """SHA-256 fingerprint of the file's bytes, read in 64 KiB blocks."""
    h = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for block in iter(lambda: fh.read(65536), b""):
            h.update(block)
    return h.hexdigest()


def chunk_id_for(message_id: str, chunk_index: int) -> str:
    return f"{message_id}::{chunk_index}"


class IngestPipeline:
    """Ingest export files into the store.

    Args:
        repo:    Open Repository instance.
        chunker: Chunker applied to every message (defaults: 1200 / 180 chars).
    """

    def __init__(self, repo: Repository, chunker: TextChunker | None = None) -> None:
        self._repo = repo
        self._chunker = chunker or TextChunker()

    def ingest(self, file_path: Path | str, source_label: str = DEFAULT_SOURCE_LABEL) -> IngestResult:
        """Ingest one export file.

        Raises:
            FileNotFoundError: If *file_path* does not exist.
            chatindex.ingest.parser.ExportParseError: If the file is not a JSON export.
            sqlite3.Error: If the write transaction fails (nothing is kept).
        """
        started = time.perf_counter()
        resolved = Path(file_path).expanduser().resolve()
        file_hash = compute_file_hash(resolved)

        existing = self._repo.find_completed_import(file_hash)
        if existing is not None:
            return IngestResult(
                import_id=existing.id,
                source_label=source_label,
                file_path=str(resolved),
                file_hash=file_hash,
                skipped_as_duplicate=True,
                conversations=existing.parsed_conversations,
                messages=existing.parsed_messages,
                chunks=existing.parsed_chunks,
                duration_ms=_elapsed_ms(started),
            )

        import_id = str(uuid.uuid4())
        self._repo.add_import(
            ImportRecord(
                id=import_id,
                source_label=source_label,
                file_path=str(resolved),
                file_hash=file_hash,
                status="processing",
            )
        )

        try:
            parsed = parse_export_file(resolved)
            chunk_count = 0
            with transaction(self._repo.conn):
                for conversation in parsed.conversations:
                    chunk_count += self._write_conversation(conversation, import_id, source_label)
        except Exception:
            self._repo.fail_import(import_id, traceback.format_exc())
            raise

        self._repo.complete_import(
            import_id,
            raw_conversations=parsed.raw_conversation_count,
            parsed_conversations=parsed.parsed_conversation_count,
            parsed_messages=parsed.parsed_message_count,
            parsed_chunks=chunk_count,
            skipped_messages=parsed.skipped_message_count,
        )

        return IngestResult(
            import_id=import_id,
            source_label=source_label,
            file_path=str(resolved),
            file_hash=file_hash,
            skipped_as_duplicate=False,
            conversations=parsed.parsed_conversation_count,
            messages=parsed.parsed_message_count,
            chunks=chunk_count,
            duration_ms=_elapsed_ms(started),
        )

    def _write_conversation(
        self, conversation: ParsedConversation, import_id: str, source_label: str
    ) -> int:
        """Replace one conversation's rows. Returns the number of chunks written."""
        self._repo.upsert_conversation(
            Conversation(
                id=conversation.id,
                title=conversation.title,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                source_import_id=import_id,
            )
        )
        self._repo.delete_conversation_content(conversation.id)

        metadata = json.dumps(
            {"conversation_title": conversation.title, "source_label": source_label},
            ensure_ascii=False,
        )
        written = 0
        for message in conversation.messages:
            message.source_import_id = import_id
            self._repo.add_message(message)

            for piece in self._chunker.chunk(message.content):
                self._repo.add_chunk(
                    Chunk(
                        id=chunk_id_for(message.id, piece.chunk_index),
                        conversation_id=conversation.id,
                        message_id=message.id,
                        chunk_index=piece.chunk_index,
                        role=message.role,
                        created_at=message.created_at,
                        content=piece.content,
                        token_count=piece.token_count,
                        source_import_id=import_id,
                        metadata=metadata,
                    )
                )
                written += 1
        return written


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)
