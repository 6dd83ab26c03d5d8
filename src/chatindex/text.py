"""Text utilities: role normalization, message text extraction, search tokens.

Message content arrives in several shapes depending on the export producer:

- a plain string,
- an ordered list of typed blocks (``{"type": "text", "text": ...}``) and/or strings,
- a single nested block (``{"text": ...}``, ``{"content": ...}``, ``{"parts": [...]}``).

extract_message_text() walks these shapes and returns display text only;
blocks whose ``type`` is in SKIPPED_CONTENT_TYPES never contribute.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from typing import Any

from chatindex.db.models import Role

SKIPPED_CONTENT_TYPES: frozenset[str] = frozenset(
    ["thinking", "tool_use", "tool_result", "token_budget", "knowledge"]
)

# Last-resort string fields some producers use for the message body.
GENERIC_TEXT_FIELDS: tuple[str, ...] = ("body", "value", "data", "message_text", "response")

_ROLE_ALIASES: dict[str, Role] = {
    "human": "user",
    "user": "user",
    "assistant": "assistant",
    "claude": "assistant",
    "model": "assistant",
    "system": "system",
    "tool": "tool",
}

_OBJECT_ARTIFACT_RE = re.compile(r"\[object Object\](,\[object Object\])*")
_MANY_NEWLINES_RE = re.compile(r"\n{3,}")
_TOKEN_SPLIT_RE = re.compile(r"[^\w]+")
_WHITESPACE_RE = re.compile(r"\s+")

SNIPPET_MAX_CHARS = 320


def normalize_role(value: Any) -> Role:
    """Map a producer's sender label onto the normalized role set (case-insensitive)."""
    normalized = str(value or "").strip().lower()
    return _ROLE_ALIASES.get(normalized, "unknown")


def clean_display_text(value: Any) -> str:
    """Strip serialization artifacts and excess blank lines from display text."""
    text = str(value or "")
    text = _OBJECT_ARTIFACT_RE.sub(" ", text)
    text = text.replace("\r", "")
    text = _MANY_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


# ------------------------------------------------------------------
# Content extraction
# ------------------------------------------------------------------


def _join_blocks(items: list[Any], separator: str) -> str:
    return separator.join(t for t in (extract_block_text(i) for i in items) if t)


def _nested_block_text(block: dict[str, Any]) -> str:
    """Text of a single nested block: ``text``, ``content`` or ``parts``."""
    if isinstance(block.get("text"), str):
        return block["text"]
    if isinstance(block.get("content"), str):
        return block["content"]
    if isinstance(block.get("content"), list):
        return _join_blocks(block["content"], "\n")
    if isinstance(block.get("parts"), list):
        return "\n".join(p for p in block["parts"] if isinstance(p, str) and p)
    return ""


def extract_block_text(item: Any) -> str:
    """Return the display text of one typed content block ('' for non-display blocks)."""
    if not isinstance(item, dict):
        return ""
    if item.get("type") in SKIPPED_CONTENT_TYPES:
        return ""

    if isinstance(item.get("text"), str):
        return item["text"]
    content = item.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return _join_blocks(content, "\n")
    if isinstance(content, dict):
        return _nested_block_text(content)
    return ""


def _from_content_list(record: dict[str, Any]) -> str:
    content = record.get("content")
    if not isinstance(content, list):
        return ""
    parts = [item if isinstance(item, str) else extract_block_text(item) for item in content]
    return "\n\n".join(p for p in parts if p)


def _from_content_string(record: dict[str, Any]) -> str:
    content = record.get("content")
    return content if isinstance(content, str) else ""


def _from_content_block(record: dict[str, Any]) -> str:
    content = record.get("content")
    return _nested_block_text(content) if isinstance(content, dict) else ""


def _from_text_field(record: dict[str, Any]) -> str:
    text = record.get("text")
    return text if isinstance(text, str) else ""


def _from_mapping(record: dict[str, Any]) -> str:
    mapping = record.get("mapping")
    if not isinstance(mapping, dict):
        return ""
    texts = [
        extract_message_text(node["message"])
        for node in mapping.values()
        if isinstance(node, dict) and "message" in node
    ]
    return "\n\n".join(t for t in texts if t)


def _from_generic_fields(record: dict[str, Any]) -> str:
    for prop in GENERIC_TEXT_FIELDS:
        value = record.get(prop)
        if isinstance(value, str) and value.strip():
            return value
    return ""


# Tried in order; the first strategy whose cleaned result is non-empty wins.
_MESSAGE_TEXT_STRATEGIES: tuple[Callable[[dict[str, Any]], str], ...] = (
    _from_content_list,
    _from_content_string,
    _from_content_block,
    _from_text_field,
    _from_mapping,
    _from_generic_fields,
)


def extract_message_text(message: Any) -> str:
    """Return the cleaned display text of a raw message ('' when none resolves)."""
    if isinstance(message, str):
        return clean_display_text(message)
    if not isinstance(message, dict):
        return ""

    for strategy in _MESSAGE_TEXT_STRATEGIES:
        text = clean_display_text(strategy(message))
        if text:
            return text
    return ""


# ------------------------------------------------------------------
# Search helpers
# ------------------------------------------------------------------


def tokenize_for_search(text: str) -> list[str]:
    """Lowercased runs of Unicode letters/digits/underscore, single characters dropped."""
    return [
        token
        for token in _TOKEN_SPLIT_RE.split(clean_display_text(text).lower())
        if len(token) > 1
    ]


def to_fts_query(query: str) -> str:
    """Build an FTS5 MATCH expression requiring every token as a prefix.

    Tokens are quoted so FTS5 never reads one as an operator or column name.
    Returns '' when the query has no usable tokens.
    """
    return " AND ".join(f'"{token}"*' for token in tokenize_for_search(query))


def build_snippet(content: str, query: str, max_len: int = SNIPPET_MAX_CHARS) -> str:
    """Cut a display snippet of at most *max_len* chars around the first query term."""
    clean = clean_display_text(content)
    if len(clean) <= max_len:
        return clean

    lower = clean.lower()
    positions = [p for p in (lower.find(t) for t in tokenize_for_search(query)) if p >= 0]
    if not positions:
        return f"{clean[:max_len].strip()}..."

    start = max(0, min(positions) - int(max_len * 0.3))
    end = min(len(clean), start + max_len)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(clean) else ""
    return f"{prefix}{clean[start:end].strip()}{suffix}"


def estimate_token_count(text: str) -> int:
    """Approximate token count: words * 1.3 rounded half up, at least 1.

    A heuristic, not tokenizer output.
    """
    words = [w for w in _WHITESPACE_RE.split(clean_display_text(text)) if w]
    return max(1, math.floor(len(words) * 1.3 + 0.5))
