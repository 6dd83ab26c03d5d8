"""Tests for retrieval evaluation (hit rate / MRR)."""

from __future__ import annotations

import json

import pytest
import yaml

from chatindex.config import ChatIndexConfig
from chatindex.rag.evaluation import EvalCase, evaluate, load_eval_cases
from chatindex.services import create_services


@pytest.fixture
def search_service(tmp_path, write_export, sample_export):
    svc = create_services(ChatIndexConfig(), db_path=tmp_path / "eval.db")
    svc.ingest_pipeline.ingest(write_export(sample_export))
    svc.embedding_service.index_missing()
    yield svc.search_service
    svc.close()


def test_evaluate_hits_and_mrr(search_service):
    cases = [
        EvalCase(query="docker", expected_any_of=["Docker"]),
        EvalCase(query="installiere", expected_any_of=["nothing like this"]),
    ]
    report = evaluate(search_service, cases, top_k=5)

    assert report.query_count == 2
    assert report.hit_rate_at_k == pytest.approx(0.5)
    assert report.mrr_at_k == pytest.approx(0.5)
    assert report.details[0].hit is True
    assert report.details[0].first_relevant_rank == 1
    assert report.details[1].first_relevant_rank is None


def test_evaluate_matches_conversation_title(search_service):
    report = evaluate(search_service, [EvalCase(query="docker", expected_any_of=["random topic"])])
    assert report.hit_rate_at_k == 1.0


def test_evaluate_empty_case_list(search_service):
    report = evaluate(search_service, [])
    assert (report.query_count, report.hit_rate_at_k, report.mrr_at_k) == (0, 0.0, 0.0)


def test_load_eval_cases_json(tmp_path):
    path = tmp_path / "queries.json"
    path.write_text(
        json.dumps(
            [
                {"query": "akne", "expected_any_of": ["Adapalen"]},
                {"query": "docker", "expectedAnyOf": ["Docker"], "filters": {"role": "user"}},
            ]
        ),
        encoding="utf-8",
    )
    cases = load_eval_cases(path)
    assert [c.query for c in cases] == ["akne", "docker"]
    assert cases[0].filters is None
    assert cases[1].expected_any_of == ["Docker"]
    assert cases[1].filters.role == "user"


def test_load_eval_cases_yaml(tmp_path):
    path = tmp_path / "queries.yaml"
    path.write_text(yaml.dump([{"query": "akne", "expected_any_of": ["Akne"]}]), encoding="utf-8")
    assert load_eval_cases(path)[0].expected_any_of == ["Akne"]


@pytest.mark.parametrize(
    "payload",
    [{"query": "not a list"}, [{"expected_any_of": ["x"]}], [{"query": "q", "expected_any_of": "x"}]],
)
def test_load_eval_cases_rejects_malformed(tmp_path, payload):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ValueError):
        load_eval_cases(path)
