"""Service container: one connection, one provider, shared by every component."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from chatindex.config import ChatIndexConfig
from chatindex.db.connection import Database
from chatindex.db.repository import Repository
from chatindex.db.schema import initialize
from chatindex.ingest.chunker import TextChunker
from chatindex.ingest.pipeline import IngestPipeline
from chatindex.rag.embeddings import (
    EmbeddingProvider,
    EmbeddingService,
    create_embedding_provider,
)
from chatindex.rag.search import SearchService


@dataclass
class Services:
    config: ChatIndexConfig
    database: Database
    conn: sqlite3.Connection
    repository: Repository
    ingest_pipeline: IngestPipeline
    embedding_service: EmbeddingService
    search_service: SearchService

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Services:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def create_services(
    config: ChatIndexConfig | None = None,
    *,
    db_path: Path | str | None = None,
    provider: EmbeddingProvider | None = None,
) -> Services:
    """Open the store, apply migrations, and wire every component.

    Args:
        config: Loaded configuration (defaults if None).
        db_path: Override config.database.path.
        provider: Override the configured embedding provider.
    """
    cfg = config or ChatIndexConfig()
    database = Database(db_path or cfg.database.path)
    conn = database.connect()
    try:
        initialize(conn)
    except Exception:
        conn.close()
        raise

    repo = Repository(conn)
    embedding_service = EmbeddingService(repo, provider or create_embedding_provider(cfg.embedding))
    return Services(
        config=cfg,
        database=database,
        conn=conn,
        repository=repo,
        ingest_pipeline=IngestPipeline(
            repo, TextChunker(cfg.chunking.max_chars, cfg.chunking.overlap_chars)
        ),
        embedding_service=embedding_service,
        search_service=SearchService(repo, embedding_service, cfg.search),
    )
