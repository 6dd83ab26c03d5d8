"""Tolerant parser for exported conversation archives.

Supported top-level shapes:
- **Array** ``[{conversation}, ...]``
- **Object with a conversations array** ``{"conversations": [...]}``
- **Object with a conversations map** ``{"conversations": {"id": {...}}}``
- **Single conversation** ``{"messages": [...]}`` (or ``chat_messages`` /
  ``conversation`` / ``mapping``)

Each field (id, title, timestamps, message collection, sender) is resolved by
trying a fixed list of known keys in order and keeping the first usable value.
Messages without display text are skipped and counted; conversations without
any surviving message are dropped.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chatindex.db.models import Message
from chatindex.text import extract_message_text, normalize_role
from chatindex.timeutil import epoch_to_iso, now_iso

_CONVERSATION_ID_FIELDS = ("id", "uuid")
_CONVERSATION_TITLE_FIELDS = ("title", "name", "summary")
_CONVERSATION_CREATED_FIELDS = ("created_at", "create_time")
_CONVERSATION_UPDATED_FIELDS = ("updated_at", "update_time")
_MESSAGE_COLLECTION_FIELDS = ("messages", "chat_messages", "conversation")
_MESSAGE_ID_FIELDS = ("id", "uuid", "message_id")
_MESSAGE_TIME_FIELDS = ("created_at", "timestamp", "create_time")


class ExportParseError(ValueError):
    """Raised when an export file cannot be read or is not valid JSON."""


@dataclass
class ParsedConversation:
    id: str
    title: str
    created_at: str
    updated_at: str
    messages: list[Message] = field(default_factory=list)


@dataclass
class ParsedExport:
    """Normalized conversations plus parse counts.

    Attributes:
        conversations: Conversations with at least one message, in input order.
        raw_conversation_count: Conversation candidates found in the document.
        parsed_conversation_count: Conversations kept.
        parsed_message_count: Messages kept across all conversations.
        skipped_message_count: Messages dropped because no text resolved.
    """

    conversations: list[ParsedConversation] = field(default_factory=list)
    raw_conversation_count: int = 0
    parsed_conversation_count: int = 0
    parsed_message_count: int = 0
    skipped_message_count: int = 0


# ------------------------------------------------------------------
# Field helpers
# ------------------------------------------------------------------


def _as_record(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_non_empty_string(record: dict[str, Any], fields: tuple[str, ...]) -> str | None:
    for name in fields:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _is_epoch(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _first_timestamp(record: dict[str, Any], fields: tuple[str, ...]) -> str | float | None:
    for name in fields:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value
        if _is_epoch(value):
            return value
    return None


def normalize_timestamp(value: Any, fallback: str) -> str:
    """Pass strings through, convert epoch seconds to ISO-8601, else *fallback*."""
    if isinstance(value, str) and value.strip():
        return value
    if _is_epoch(value):
        try:
            return epoch_to_iso(value)
        except (OverflowError, OSError, ValueError):
            return fallback
    return fallback


# ------------------------------------------------------------------
# Collection location
# ------------------------------------------------------------------


def _conversations_from_array(data: Any) -> list[Any] | None:
    return data if isinstance(data, list) else None


def _conversations_from_property(data: Any) -> list[Any] | None:
    conversations = _as_record(data).get("conversations")
    return conversations if isinstance(conversations, list) else None


def _conversations_from_map(data: Any) -> list[Any] | None:
    conversations = _as_record(data).get("conversations")
    return list(conversations.values()) if isinstance(conversations, dict) else None


def _conversation_from_document(data: Any) -> list[Any] | None:
    root = _as_record(data)
    if any(isinstance(root.get(name), list) for name in _MESSAGE_COLLECTION_FIELDS):
        return [root]
    if isinstance(root.get("mapping"), dict):
        return [root]
    return None


_CONVERSATION_LOCATORS: tuple[Callable[[Any], list[Any] | None], ...] = (
    _conversations_from_array,
    _conversations_from_property,
    _conversations_from_map,
    _conversation_from_document,
)


def locate_conversations(data: Any) -> list[Any]:
    """Return the raw conversation candidates of a loaded export document."""
    for locate in _CONVERSATION_LOCATORS:
        found = locate(data)
        if found is not None:
            return found
    return []


def locate_messages(conversation: dict[str, Any]) -> list[Any]:
    """Return the raw messages of one raw conversation, in source order."""
    for name in _MESSAGE_COLLECTION_FIELDS:
        value = conversation.get(name)
        if isinstance(value, list) and value:
            return list(value)

    mapping = conversation.get("mapping")
    if isinstance(mapping, dict):
        return [
            node["message"]
            for node in mapping.values()
            if isinstance(node, dict) and node.get("message")
        ]
    return []


# ------------------------------------------------------------------
# Conversation + message parsing
# ------------------------------------------------------------------


def _message_sender(record: dict[str, Any]) -> str:
    sender = _first_non_empty_string(record, ("sender", "role"))
    if sender:
        return sender
    author_role = _as_record(record.get("author")).get("role")
    if isinstance(author_role, str) and author_role.strip():
        return author_role
    return "unknown"


def _parse_messages(
    conversation_id: str,
    raw_messages: list[Any],
    fallback_time: str,
    result: ParsedExport,
) -> list[Message]:
    messages: list[Message] = []

    for idx, raw in enumerate(raw_messages):
        record = _as_record(raw)
        content = extract_message_text(record)
        if not content:
            result.skipped_message_count += 1
            continue

        sender = _message_sender(record)
        messages.append(
            Message(
                id=_first_non_empty_string(record, _MESSAGE_ID_FIELDS)
                or f"{conversation_id}::message::{idx}",
                conversation_id=conversation_id,
                role=normalize_role(sender),
                sender=sender,
                created_at=normalize_timestamp(
                    _first_timestamp(record, _MESSAGE_TIME_FIELDS), fallback_time
                ),
                position=len(messages),
                content=content,
            )
        )

    return messages


def _parse_conversation(
    raw: Any, index: int, result: ParsedExport
) -> ParsedConversation | None:
    record = _as_record(raw)

    conversation_id = (
        _first_non_empty_string(record, _CONVERSATION_ID_FIELDS) or f"conversation-{index}"
    )
    title = (
        _first_non_empty_string(record, _CONVERSATION_TITLE_FIELDS)
        or f"Conversation {index + 1}"
    )
    created_at = normalize_timestamp(
        _first_timestamp(record, _CONVERSATION_CREATED_FIELDS), now_iso()
    )
    updated_at = normalize_timestamp(
        _first_timestamp(record, _CONVERSATION_UPDATED_FIELDS), created_at
    )

    messages = _parse_messages(conversation_id, locate_messages(record), created_at, result)
    if not messages:
        return None

    return ParsedConversation(
        id=conversation_id,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
        messages=messages,
    )


def parse_document(data: Any) -> ParsedExport:
    """Normalize an already-loaded export document."""
    raw_conversations = locate_conversations(data)
    result = ParsedExport(raw_conversation_count=len(raw_conversations))

    for index, raw in enumerate(raw_conversations):
        conversation = _parse_conversation(raw, index, result)
        if conversation is not None:
            result.conversations.append(conversation)

    result.parsed_conversation_count = len(result.conversations)
    result.parsed_message_count = sum(len(c.messages) for c in result.conversations)
    return result


def parse_export(raw: bytes | str) -> ParsedExport:
    """Decode and parse export bytes (UTF-8, optional BOM).

    Raises:
        ExportParseError: If the payload is not valid UTF-8 JSON.
    """
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ExportParseError(f"Export is not valid JSON: {exc}") from exc
    return parse_document(data)


def parse_export_file(path: Path | str) -> ParsedExport:
    """Read and parse an export file.

    Raises:
        ExportParseError: If the file cannot be read or is not valid JSON.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ExportParseError(f"Cannot read export file '{path}': {exc}") from exc
    return parse_export(raw)
