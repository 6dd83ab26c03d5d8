"""Search service: lexical (BM25), semantic (cosine), hybrid (RRF) retrieval.

Hybrid scoring:
  1. Lexical and semantic searches each return up to 4 x top_k hits.
  2. Reciprocal Rank Fusion over both id lists (k = 60).
  3. +0.03 for hits whose content contains the cleaned, lowercased query verbatim.
  4. Re-sort, truncate to top_k, re-number ranks.

Every search call appends a row to search_logs.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace

from chatindex.config import SearchCfg
from chatindex.db.models import Chunk, Conversation, Message, SearchFilters
from chatindex.db.repository import Repository
from chatindex.rag.embeddings import EmbeddingService
from chatindex.rag.ranking import cosine_similarity, reciprocal_rank_fusion
from chatindex.text import (
    build_snippet,
    clean_display_text,
    to_fts_query,
    tokenize_for_search,
)

NO_EVIDENCE_ANSWER = (
    "No matching evidence found in the conversation archive. "
    "Try a more specific question or looser filters."
)


@dataclass
class SearchHit:
    chunk_id: str
    conversation_id: str
    conversation_title: str
    message_id: str
    role: str
    created_at: str
    snippet: str
    content: str
    score: float
    rank: int
    source: str  # lexical | semantic | hybrid


@dataclass
class Citation:
    conversation_id: str
    conversation_title: str
    message_id: str
    chunk_id: str
    role: str
    created_at: str
    snippet: str
    score: float


@dataclass
class Answer:
    answer: str
    citations: list[Citation] = field(default_factory=list)


@dataclass
class ConversationLookup:
    """Result of get_conversation(); branch on ``found``."""

    found: bool
    conversation: Conversation | None = None
    messages: list[Message] = field(default_factory=list)


@dataclass
class MessageContext:
    """Result of get_message_context(); branch on ``found``."""

    found: bool
    conversation: Conversation | None = None
    focus_message_id: str | None = None
    messages: list[Message] = field(default_factory=list)


def clamp_top_k(top_k: object, minimum: int = 1, maximum: int = 100) -> int:
    """Clamp *top_k* into [minimum, maximum]; non-numeric or non-finite → minimum."""
    if isinstance(top_k, bool) or not isinstance(top_k, (int, float)):
        return minimum
    if not math.isfinite(top_k):
        return minimum
    return max(minimum, min(maximum, math.floor(top_k)))


def _to_hit(chunk: Chunk, title: str, query: str, score: float, rank: int, source: str) -> SearchHit:
    return SearchHit(
        chunk_id=chunk.id,
        conversation_id=chunk.conversation_id,
        conversation_title=title,
        message_id=chunk.message_id,
        role=chunk.role or "unknown",
        created_at=chunk.created_at,
        snippet=build_snippet(chunk.content, query),
        content=chunk.content,
        score=score,
        rank=rank,
        source=source,
    )


class SearchService:
    """Query the chunk index and read conversations back.

    Args:
        repo:              Open Repository instance.
        embedding_service: Service used to embed queries and backfill vectors.
        config:            Search limits and fusion constants.
    """

    def __init__(
        self,
        repo: Repository,
        embedding_service: EmbeddingService,
        config: SearchCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embeddings = embedding_service
        self._cfg = config or SearchCfg()

    # ------------------------------------------------------------------
    # Retrieval modes
    # ------------------------------------------------------------------

    def search_lexical(
        self, query: str, filters: SearchFilters | None = None, top_k: int = 10
    ) -> list[SearchHit]:
        """BM25 search requiring every query token as a prefix match."""
        started = time.perf_counter()
        final_top_k = self._clamp(top_k)
        fts_query = to_fts_query(query)

        hits: list[SearchHit] = []
        if fts_query:
            rows = self._repo.search_fts(fts_query, filters, limit=final_top_k)
            hits = [
                _to_hit(chunk, title, query, 1.0 / (1 + i), i + 1, "lexical")
                for i, (chunk, title, _) in enumerate(rows)
            ]

        self._log("lexical", query, final_top_k, filters, started, len(hits))
        return hits

    def search_semantic(
        self, query: str, filters: SearchFilters | None = None, top_k: int = 10
    ) -> list[SearchHit]:
        """Cosine similarity over a bounded pool of embedded chunks.

        Backfills embeddings first when none exist yet or when the stored ones
        come from another provider. Queries without search tokens never reach
        the provider.
        """
        started = time.perf_counter()
        final_top_k = self._clamp(top_k)

        hits: list[SearchHit] = []
        query_vector: list[float] = []
        if tokenize_for_search(query):
            if not self._embeddings.has_embeddings():
                self._embeddings.index_missing()
            query_vector = self._embeddings.embed_query(query)
        if query_vector:
            pool_size = max(final_top_k * 60, 300)
            candidates = self._repo.embedding_candidates(
                self._embeddings.provider.model, filters, limit=pool_size
            )
            scored = [
                (chunk, title, cosine_similarity(query_vector, vector))
                for chunk, title, vector in candidates
            ]
            scored = [entry for entry in scored if entry[2] > 0]
            scored.sort(key=lambda entry: entry[2], reverse=True)
            hits = [
                _to_hit(chunk, title, query, similarity, i + 1, "semantic")
                for i, (chunk, title, similarity) in enumerate(scored[:final_top_k])
            ]

        self._log("semantic", query, final_top_k, filters, started, len(hits))
        return hits

    def search_hybrid(
        self, query: str, filters: SearchFilters | None = None, top_k: int = 10
    ) -> list[SearchHit]:
        """Fuse lexical and semantic rankings (RRF + exact-match boost)."""
        started = time.perf_counter()
        final_top_k = self._clamp(top_k)

        lexical = self.search_lexical(query, filters, final_top_k * 4)
        semantic = self.search_semantic(query, filters, final_top_k * 4)

        fused = reciprocal_rank_fusion(
            [[h.chunk_id for h in lexical], [h.chunk_id for h in semantic]],
            k=self._cfg.rrf_k,
        )

        by_chunk_id: dict[str, SearchHit] = {h.chunk_id: h for h in lexical}
        for hit in semantic:
            existing = by_chunk_id.get(hit.chunk_id)
            if existing is None or hit.score > existing.score:
                by_chunk_id[hit.chunk_id] = hit

        normalized_query = clean_display_text(query).lower()
        merged: list[SearchHit] = []
        for chunk_id, score in fused:
            base = by_chunk_id[chunk_id]
            if normalized_query and normalized_query in base.content.lower():
                score += self._cfg.exact_match_boost
            merged.append(replace(base, score=score, source="hybrid"))

        merged.sort(key=lambda h: h.score, reverse=True)
        hits = [replace(h, rank=i + 1) for i, h in enumerate(merged[:final_top_k])]

        self._log("hybrid", query, final_top_k, filters, started, len(hits))
        return hits

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> ConversationLookup:
        """Return the conversation and all its messages in position order."""
        conversation = self._repo.get_conversation(conversation_id)
        if conversation is None:
            return ConversationLookup(found=False)
        return ConversationLookup(
            found=True,
            conversation=conversation,
            messages=self._repo.list_messages(conversation_id),
        )

    def get_message_context(
        self, message_id: str, before: int = 2, after: int = 2
    ) -> MessageContext:
        """Return a message with up to *before* / *after* neighbours by position."""
        focus = self._repo.get_message(message_id)
        if focus is None:
            return MessageContext(found=False)

        start = max(0, focus.position - max(0, before))
        end = focus.position + max(0, after)
        return MessageContext(
            found=True,
            conversation=self._repo.get_conversation(focus.conversation_id),
            focus_message_id=focus.id,
            messages=self._repo.list_messages(focus.conversation_id, start=start, end=end),
        )

    def answer_with_citations(
        self,
        question: str,
        filters: SearchFilters | None = None,
        max_citations: int = 5,
    ) -> Answer:
        """Extractive answer: top hybrid hits as citations plus a short digest of the top 3."""
        max_citations = max(1, int(max_citations))
        hits = self.search_hybrid(question, filters, max(max_citations * 2, 8))
        if not hits:
            return Answer(answer=NO_EVIDENCE_ANSWER, citations=[])

        citations = [
            Citation(
                conversation_id=h.conversation_id,
                conversation_title=h.conversation_title,
                message_id=h.message_id,
                chunk_id=h.chunk_id,
                role=h.role,
                created_at=h.created_at,
                snippet=h.snippet,
                score=h.score,
            )
            for h in hits[:max_citations]
        ]

        top = "\n\n".join(
            f"{i}. [{c.conversation_title}] ({c.created_at})\n{c.snippet}"
            for i, c in enumerate(citations[:3], start=1)
        )
        answer = "\n".join(
            [
                "These are the most relevant passages from your conversation archive.",
                "",
                top,
                "",
                "Use the citations for follow-up questions, or ask for a detailed "
                "summary of a single hit.",
            ]
        )
        return Answer(answer=answer, citations=citations)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clamp(self, top_k: object) -> int:
        return clamp_top_k(top_k, 1, self._cfg.max_top_k)

    def _log(
        self,
        mode: str,
        query: str,
        top_k: int,
        filters: SearchFilters | None,
        started: float,
        result_count: int,
    ) -> None:
        self._repo.add_search_log(
            mode=mode,
            query=query,
            top_k=top_k,
            filters=filters,
            latency_ms=(time.perf_counter() - started) * 1000,
            result_count=result_count,
        )
