"""Shared pytest fixtures."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

# litellm fetches its model cost map over the network at import time; use the
# bundled copy so tests run offline without hanging in litellm's fallback path.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from chatindex.db.connection import Database
from chatindex.db.repository import Repository
from chatindex.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "conversations.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db) -> Repository:
    return Repository(tmp_db)


@pytest.fixture
def write_export(tmp_path):
    """Write a JSON export document to tmp_path and return its path."""

    def _write(data, name: str = "export.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


SAMPLE_EXPORT = [
    {
        "uuid": "conv-1",
        "name": "Skincare Research",
        "created_at": "2026-02-01T10:00:00.000Z",
        "updated_at": "2026-02-01T10:10:00.000Z",
        "chat_messages": [
            {
                "uuid": "m1",
                "sender": "human",
                "created_at": "2026-02-01T10:00:00.000Z",
                "content": [
                    {"type": "text", "text": "Welche evidenzbasierten Interventionen helfen gegen Akne?"}
                ],
            },
            {
                "uuid": "m2",
                "sender": "assistant",
                "created_at": "2026-02-01T10:01:00.000Z",
                "content": [
                    {"type": "thinking", "thinking": "internal chain of thought"},
                    {
                        "type": "text",
                        "text": "Adapalen und Benzoylperoxid sind laut Leitlinien starke Optionen gegen Akne.",
                    },
                ],
            },
        ],
    },
    {
        "uuid": "conv-2",
        "name": "Random Topic",
        "created_at": "2026-02-02T10:00:00.000Z",
        "updated_at": "2026-02-02T10:10:00.000Z",
        "chat_messages": [
            {
                "uuid": "m3",
                "sender": "human",
                "created_at": "2026-02-02T10:00:00.000Z",
                "content": [{"type": "text", "text": "Wie installiere ich Docker?"}],
            },
        ],
    },
]


@pytest.fixture
def sample_export() -> list[dict]:
    """Two conversations, three messages (German skincare + Docker)."""
    return json.loads(json.dumps(SAMPLE_EXPORT))
