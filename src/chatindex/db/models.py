"""Domain models for the chatindex database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant", "system", "tool", "unknown"]
ImportStatus = Literal["processing", "completed", "failed"]


@dataclass
class ImportRecord:
    id: str
    source_label: str
    file_path: str
    file_hash: str
    status: str = "processing"
    imported_at: str | None = None
    completed_at: str | None = None
    raw_conversations: int = 0
    parsed_conversations: int = 0
    parsed_messages: int = 0
    parsed_chunks: int = 0
    skipped_messages: int = 0
    error_text: str | None = None


@dataclass
class Conversation:
    id: str
    title: str
    created_at: str
    updated_at: str
    source_import_id: str = ""


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str
    sender: str
    created_at: str
    position: int
    content: str
    source_import_id: str = ""


@dataclass
class Chunk:
    id: str
    conversation_id: str
    message_id: str
    chunk_index: int
    role: str
    created_at: str
    content: str
    token_count: int
    source_import_id: str = ""
    metadata: str = field(default_factory=lambda: "{}")

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata or "{}")


@dataclass
class SearchFilters:
    """Optional restrictions applied to every search mode.

    Attributes:
        conversation_id: Only chunks of this conversation.
        role: Only chunks whose message has this normalized role.
        date_from: Inclusive lower bound on chunk created_at (ISO string compare).
        date_to: Inclusive upper bound on chunk created_at.
    """

    conversation_id: str | None = None
    role: str | None = None
    date_from: str | None = None
    date_to: str | None = None

    def as_dict(self) -> dict[str, str]:
        """Return only the filters that are set (used for search logging)."""
        return {
            key: value
            for key, value in (
                ("conversation_id", self.conversation_id),
                ("role", self.role),
                ("date_from", self.date_from),
                ("date_to", self.date_to),
            )
            if value
        }


@dataclass
class OverviewStats:
    conversations: int
    messages: int
    chunks: int
    embeddings: int
    latest_import: ImportRecord | None = None
