"""Tests for SearchService: lexical, semantic, hybrid, lookups and answers."""

from __future__ import annotations

import json

import pytest

from chatindex.config import ChatIndexConfig
from chatindex.db.models import SearchFilters
from chatindex.rag.embeddings import EmbeddingProviderError, HashEmbeddingProvider
from chatindex.rag.search import NO_EVIDENCE_ANSWER, clamp_top_k
from chatindex.services import Services, create_services
from chatindex.text import tokenize_for_search


@pytest.fixture
def services(tmp_path, write_export, sample_export):
    svc = create_services(ChatIndexConfig(), db_path=tmp_path / "search.db")
    svc.ingest_pipeline.ingest(write_export(sample_export), source_label="test")
    svc.embedding_service.index_missing()
    yield svc
    svc.close()


def _logs(services: Services) -> list[dict]:
    rows = services.conn.execute("SELECT * FROM search_logs ORDER BY rowid").fetchall()
    return [dict(r) for r in rows]


class _RenamedHashProvider(HashEmbeddingProvider):
    model = "hash-embedding-v2"


class _RejectsBlankProvider(HashEmbeddingProvider):
    """Raises like a remote endpoint does for inputs without words."""

    def embed(self, texts):
        if any(not tokenize_for_search(t) for t in texts):
            raise EmbeddingProviderError("input must not be empty")
        return super().embed(texts)


# ---------------------------------------------------------------------------
# Hybrid
# ---------------------------------------------------------------------------


def test_hybrid_finds_relevant_conversation(services):
    hits = services.search_service.search_hybrid("Was hilft gegen Akne langfristig?", None, 5)
    assert hits
    assert "Skincare" in hits[0].conversation_title
    assert "akne" in hits[0].content.lower()


def test_hybrid_ranks_are_sequential_and_sorted(services):
    hits = services.search_service.search_hybrid("gegen Akne", None, 10)
    assert [h.rank for h in hits] == list(range(1, len(hits) + 1))
    assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)
    assert all(h.source == "hybrid" for h in hits)


def test_hybrid_exact_match_boost(services):
    hits = services.search_service.search_hybrid("docker", None, 5)
    assert hits[0].message_id == "m3"
    assert hits[0].score == pytest.approx(2 / 61 + 0.03)


def test_hybrid_is_deterministic(services):
    first = services.search_service.search_hybrid("Akne Optionen", None, 5)
    second = services.search_service.search_hybrid("Akne Optionen", None, 5)
    assert [(h.chunk_id, h.score) for h in first] == [(h.chunk_id, h.score) for h in second]


# ---------------------------------------------------------------------------
# Lexical
# ---------------------------------------------------------------------------


def test_lexical_single_hit(services):
    hits = services.search_service.search_lexical("docker")
    assert [h.message_id for h in hits] == ["m3"]
    assert hits[0].score == 1.0
    assert hits[0].rank == 1
    assert hits[0].source == "lexical"
    assert hits[0].conversation_title == "Random Topic"


def test_lexical_prefix_match(services):
    assert [h.message_id for h in services.search_service.search_lexical("install")] == ["m3"]


def test_lexical_requires_every_token(services):
    assert services.search_service.search_lexical("docker akne") == []


def test_lexical_scores_decrease_with_rank(services):
    hits = services.search_service.search_lexical("akne")
    assert [h.score for h in hits] == [1.0, 0.5]


def test_lexical_role_filter(services):
    hits = services.search_service.search_lexical("akne", SearchFilters(role="assistant"))
    assert [h.message_id for h in hits] == ["m2"]


def test_lexical_conversation_filter(services):
    hits = services.search_service.search_lexical("akne", SearchFilters(conversation_id="conv-2"))
    assert hits == []


def test_lexical_date_filter(services):
    hits = services.search_service.search_lexical(
        "akne", SearchFilters(date_from="2026-02-01T10:00:30.000Z")
    )
    assert [h.message_id for h in hits] == ["m2"]


# ---------------------------------------------------------------------------
# Semantic
# ---------------------------------------------------------------------------


def test_semantic_scores_positive_and_sorted(services):
    hits = services.search_service.search_semantic("Akne Behandlung", None, 10)
    assert hits
    assert all(h.score > 0 for h in hits)
    assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)
    assert hits[0].source == "semantic"


def test_semantic_backfills_when_no_embeddings(tmp_path, write_export, sample_export):
    with create_services(ChatIndexConfig(), db_path=tmp_path / "fresh.db") as svc:
        svc.ingest_pipeline.ingest(write_export(sample_export))
        assert svc.repository.count_embeddings() == 0
        svc.search_service.search_semantic("docker")
        assert svc.repository.count_embeddings() == 3


def test_semantic_reindexes_after_provider_switch(tmp_path, write_export, sample_export):
    db_path = tmp_path / "switch.db"
    with create_services(ChatIndexConfig(), db_path=db_path) as svc:
        svc.ingest_pipeline.ingest(write_export(sample_export))
        svc.embedding_service.index_missing()
        assert svc.search_service.search_semantic("docker")

    provider = _RenamedHashProvider()
    with create_services(ChatIndexConfig(), db_path=db_path, provider=provider) as svc:
        with pytest.warns(UserWarning, match="hash-embedding-v1"):
            hits = svc.search_service.search_semantic("docker")
        assert hits
        assert svc.repository.embedding_signatures() == {("hash-embedding-v2", 384)}


@pytest.mark.parametrize("query", ["", "?!", "a"])
def test_semantic_skips_provider_for_queries_without_tokens(
    tmp_path, write_export, sample_export, query
):
    provider = _RejectsBlankProvider()
    db_path = tmp_path / "blank.db"
    with create_services(ChatIndexConfig(), db_path=db_path, provider=provider) as svc:
        svc.ingest_pipeline.ingest(write_export(sample_export))
        assert svc.search_service.search_semantic(query) == []
        assert svc.search_service.search_hybrid(query) == []
        assert len(_logs(svc)) == 4


# ---------------------------------------------------------------------------
# Empty queries + top-k clamping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("query", ["", "?!", "a"])
def test_queries_without_tokens_return_nothing(services, query):
    search = services.search_service
    assert search.search_lexical(query) == []
    assert search.search_semantic(query) == []
    assert search.search_hybrid(query) == []


def test_empty_query_is_still_logged(services):
    services.search_service.search_lexical("?!")
    logs = _logs(services)
    assert len(logs) == 1
    assert logs[0]["result_count"] == 0


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, 1), (-5, 1), (3.9, 3), (10_000, 100), (float("nan"), 1), ("5", 1), (None, 1), (True, 1)],
)
def test_clamp_top_k(value, expected):
    assert clamp_top_k(value, 1, 100) == expected


def test_top_k_is_clamped_in_search(services):
    hits = services.search_service.search_lexical("akne", None, 0)
    assert len(hits) == 1
    assert _logs(services)[-1]["top_k"] == 1


# ---------------------------------------------------------------------------
# Search logs
# ---------------------------------------------------------------------------


def test_search_log_row(services):
    services.search_service.search_lexical("docker", SearchFilters(role="user"), 7)
    log = _logs(services)[-1]
    assert log["mode"] == "lexical"
    assert log["query"] == "docker"
    assert log["top_k"] == 7
    assert json.loads(log["filters_json"]) == {"role": "user"}
    assert log["result_count"] == 1
    assert log["latency_ms"] >= 0
    assert log["created_at"].endswith("Z")


def test_hybrid_logs_every_stage(services):
    services.search_service.search_hybrid("docker", None, 2)
    assert [log["mode"] for log in _logs(services)] == ["lexical", "semantic", "hybrid"]
    assert [log["top_k"] for log in _logs(services)] == [8, 8, 2]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def test_get_conversation(services):
    lookup = services.search_service.get_conversation("conv-1")
    assert lookup.found
    assert lookup.conversation.title == "Skincare Research"
    assert [m.id for m in lookup.messages] == ["m1", "m2"]


def test_get_conversation_not_found(services):
    lookup = services.search_service.get_conversation("missing")
    assert not lookup.found
    assert lookup.messages == []


@pytest.fixture
def long_conversation(services, write_export):
    doc = [
        {
            "id": "long",
            "title": "Long chat",
            "messages": [{"id": f"L{i}", "role": "user", "content": f"message {i}"} for i in range(7)],
        }
    ]
    services.ingest_pipeline.ingest(write_export(doc, "long.json"))
    return services


def test_message_context_window(long_conversation):
    ctx = long_conversation.search_service.get_message_context("L3", before=1, after=2)
    assert ctx.found
    assert ctx.focus_message_id == "L3"
    assert [m.id for m in ctx.messages] == ["L2", "L3", "L4", "L5"]
    assert ctx.conversation.title == "Long chat"


def test_message_context_clipped_at_edges(long_conversation):
    ctx = long_conversation.search_service.get_message_context("L0", before=2, after=2)
    assert [m.id for m in ctx.messages] == ["L0", "L1", "L2"]
    ctx = long_conversation.search_service.get_message_context("L6")
    assert [m.id for m in ctx.messages] == ["L4", "L5", "L6"]


def test_message_context_not_found(services):
    assert not services.search_service.get_message_context("nope").found


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


def test_answer_with_citations(services):
    answer = services.search_service.answer_with_citations("Was hilft gegen Akne?", max_citations=2)
    assert 1 <= len(answer.citations) <= 2
    assert answer.citations[0].conversation_title == "Skincare Research"
    assert "Skincare Research" in answer.answer


def test_answer_without_evidence(services):
    answer = services.search_service.answer_with_citations("?!")
    assert answer.answer == NO_EVIDENCE_ANSWER
    assert answer.citations == []
