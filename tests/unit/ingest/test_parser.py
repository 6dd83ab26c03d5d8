"""Tests for the tolerant export parser."""

from __future__ import annotations

import json

import pytest

from chatindex.ingest.parser import (
    ExportParseError,
    locate_conversations,
    normalize_timestamp,
    parse_document,
    parse_export,
    parse_export_file,
)


def test_filters_thinking_and_tool_blocks(tmp_path):
    sample = [
        {
            "uuid": "conv-1",
            "name": "Test Conversation",
            "created_at": "2026-01-01T10:00:00.000Z",
            "updated_at": "2026-01-01T10:10:00.000Z",
            "chat_messages": [
                {
                    "uuid": "m1",
                    "sender": "human",
                    "created_at": "2026-01-01T10:00:00.000Z",
                    "content": [{"type": "text", "text": "Hallo, kannst du helfen?"}],
                },
                {
                    "uuid": "m2",
                    "sender": "assistant",
                    "created_at": "2026-01-01T10:00:05.000Z",
                    "content": [
                        {"type": "thinking", "thinking": "internal chain of thought"},
                        {
                            "type": "tool_result",
                            "content": [{"type": "knowledge", "text": "internal tool payload"}],
                        },
                        {"type": "text", "text": "Ja, ich kann helfen."},
                    ],
                },
            ],
        }
    ]
    path = tmp_path / "conversations.json"
    path.write_text(json.dumps(sample), encoding="utf-8")

    parsed = parse_export_file(path)

    assert len(parsed.conversations) == 1
    messages = parsed.conversations[0].messages
    assert len(messages) == 2
    assert "Hallo" in messages[0].content
    assert "Ja, ich kann helfen" in messages[1].content
    assert "[object Object]" not in messages[1].content
    assert "internal tool payload" not in messages[1].content
    assert "internal chain of thought" not in messages[1].content
    assert parsed.skipped_message_count == 0


def test_normalizes_roles_and_positions(sample_export):
    parsed = parse_document(sample_export)
    conv = parsed.conversations[0]
    assert [m.role for m in conv.messages] == ["user", "assistant"]
    assert [m.sender for m in conv.messages] == ["human", "assistant"]
    assert [m.position for m in conv.messages] == [0, 1]
    assert conv.id == "conv-1"
    assert conv.title == "Skincare Research"


def test_counts(sample_export):
    parsed = parse_document(sample_export)
    assert parsed.raw_conversation_count == 2
    assert parsed.parsed_conversation_count == 2
    assert parsed.parsed_message_count == 3
    assert parsed.skipped_message_count == 0


# ---------------------------------------------------------------------------
# Top-level shapes
# ---------------------------------------------------------------------------


def test_conversations_property():
    doc = {"conversations": [{"id": "a", "messages": [{"role": "user", "content": "hi"}]}]}
    assert [c.id for c in parse_document(doc).conversations] == ["a"]


def test_conversations_map():
    doc = {
        "conversations": {
            "x": {"id": "x", "messages": [{"role": "user", "content": "one"}]},
            "y": {"id": "y", "messages": [{"role": "user", "content": "two"}]},
        }
    }
    assert [c.id for c in parse_document(doc).conversations] == ["x", "y"]


def test_single_conversation_document():
    doc = {"title": "Solo", "messages": [{"role": "user", "content": "hello"}]}
    parsed = parse_document(doc)
    assert parsed.raw_conversation_count == 1
    assert parsed.conversations[0].title == "Solo"
    assert parsed.conversations[0].id == "conversation-0"


def test_mapping_document():
    doc = {
        "id": "gpt-1",
        "title": "Mapped",
        "create_time": 1700000000,
        "mapping": {
            "root": {"message": None},
            "n1": {"message": {"id": "q", "author": {"role": "user"}, "content": {"parts": ["Question?"]}}},
            "n2": {
                "message": {"id": "a", "author": {"role": "assistant"}, "content": {"parts": ["Answer."]}}
            },
        },
    }
    parsed = parse_document(doc)
    conv = parsed.conversations[0]
    assert [m.id for m in conv.messages] == ["q", "a"]
    assert [m.role for m in conv.messages] == ["user", "assistant"]
    assert conv.messages[1].content == "Answer."
    assert conv.created_at == "2023-11-14T22:13:20.000Z"


def test_unrecognized_document_yields_nothing():
    parsed = parse_document({"something": "else"})
    assert parsed.raw_conversation_count == 0
    assert parsed.conversations == []
    assert locate_conversations(42) == []


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------


def test_fallback_ids_and_titles():
    parsed = parse_document([{"messages": [{"content": "a"}, {"content": "b"}]}])
    conv = parsed.conversations[0]
    assert conv.id == "conversation-0"
    assert conv.title == "Conversation 1"
    assert [m.id for m in conv.messages] == ["conversation-0::message::0", "conversation-0::message::1"]
    assert conv.messages[0].role == "unknown"


def test_message_index_in_fallback_id_counts_skipped_messages():
    parsed = parse_document([{"id": "c", "messages": [{"content": ""}, {"content": "kept"}]}])
    assert parsed.conversations[0].messages[0].id == "c::message::1"
    assert parsed.conversations[0].messages[0].position == 0


def test_skipped_messages_counted_and_empty_conversation_dropped():
    doc = [
        {"id": "keep", "messages": [{"content": "ok"}, {"content": [{"type": "tool_use"}]}]},
        {"id": "drop", "messages": [{"content": "   "}]},
    ]
    parsed = parse_document(doc)
    assert [c.id for c in parsed.conversations] == ["keep"]
    assert parsed.raw_conversation_count == 2
    assert parsed.parsed_conversation_count == 1
    assert parsed.skipped_message_count == 2


def test_message_timestamp_falls_back_to_conversation():
    doc = [{"id": "c", "created_at": "2025-03-03T00:00:00Z", "messages": [{"content": "x"}]}]
    assert parse_document(doc).conversations[0].messages[0].created_at == "2025-03-03T00:00:00Z"


def test_updated_at_falls_back_to_created_at():
    doc = [{"id": "c", "created_at": "2025-03-03T00:00:00Z", "messages": [{"content": "x"}]}]
    conv = parse_document(doc).conversations[0]
    assert conv.updated_at == conv.created_at


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z"),
        (0, "1970-01-01T00:00:00.000Z"),
        (1700000000.5, "2023-11-14T22:13:20.500Z"),
        (None, "fallback"),
        ("   ", "fallback"),
        (True, "fallback"),
        (float("nan"), "fallback"),
    ],
)
def test_normalize_timestamp(value, expected):
    assert normalize_timestamp(value, "fallback") == expected


# ---------------------------------------------------------------------------
# Errors + encoding
# ---------------------------------------------------------------------------


def test_invalid_json_raises():
    with pytest.raises(ExportParseError):
        parse_export(b"{not json")


def test_missing_file_raises(tmp_path):
    with pytest.raises(ExportParseError):
        parse_export_file(tmp_path / "missing.json")


def test_utf8_bom_accepted():
    raw = "\ufeff" + json.dumps([{"id": "c", "messages": [{"content": "Grüße"}]}])
    parsed = parse_export(raw.encode("utf-8"))
    assert parsed.conversations[0].messages[0].content == "Grüße"
