"""Boundary-aware text chunker with character overlap.

Default: 1200 characters per chunk, 180 characters of overlap. Windows that
do not reach the end of the text are cut at the latest newline, sentence end
(". ") or space, provided that break lies at or past 60 % of the window.
"""

from __future__ import annotations

from dataclasses import dataclass

from chatindex.text import clean_display_text, estimate_token_count

DEFAULT_MAX_CHARS = 1200
DEFAULT_OVERLAP_CHARS = 180
_MIN_BREAK_RATIO = 0.6


@dataclass
class TextChunk:
    chunk_index: int
    content: str
    token_count: int


class TextChunker:
    """Split cleaned message text into overlapping retrieval segments.

    Token counts use estimate_token_count() (words * 1.3); no external
    tokenizer dependency is required.
    """

    def __init__(
        self,
        max_chars: int = DEFAULT_MAX_CHARS,
        overlap_chars: int = DEFAULT_OVERLAP_CHARS,
    ) -> None:
        if max_chars < 1:
            raise ValueError("max_chars must be >= 1")
        if overlap_chars < 0:
            raise ValueError("overlap_chars must be >= 0")
        self.max_chars = max_chars
        self.overlap_chars = overlap_chars

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into TextChunk objects with sequential ``chunk_index``.

        Every chunk is a trimmed, contiguous substring of the cleaned text and
        at most ``max_chars`` long. Empty input yields no chunks.
        """
        clean = clean_display_text(text)
        if not clean:
            return []
        if len(clean) <= self.max_chars:
            return [TextChunk(0, clean, estimate_token_count(clean))]

        chunks: list[TextChunk] = []
        length = len(clean)
        start = 0

        while start < length:
            end = min(length, start + self.max_chars)
            if end < length:
                end = start + self._break_offset(clean[start:end])

            content = clean[start:end].strip()
            if content:
                chunks.append(TextChunk(len(chunks), content, estimate_token_count(content)))

            if end >= length:
                break
            start = max(end - self.overlap_chars, start + 1)

        return chunks

    def _break_offset(self, window: str) -> int:
        """Return the cut offset inside *window* (exclusive end)."""
        break_at = max(window.rfind("\n"), window.rfind(". "), window.rfind(" "))
        if break_at >= int(self.max_chars * _MIN_BREAK_RATIO):
            return break_at + 1
        return len(window)


def chunk_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
) -> list[TextChunk]:
    """Convenience wrapper around ``TextChunker(max_chars, overlap_chars).chunk(text)``."""
    return TextChunker(max_chars, overlap_chars).chunk(text)
