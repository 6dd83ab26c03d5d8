"""Retrieval evaluation: hit rate and MRR of hybrid search over labelled queries.

A case is ``{"query": str, "expected_any_of": [str, ...], "filters": {...}}``.
A result is relevant when its content, snippet or conversation title contains
any expected string (case-insensitive). The first relevant rank feeds MRR.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chatindex.db.models import SearchFilters
from chatindex.rag.search import SearchService

DEFAULT_QUERIES_PATH = Path("eval") / "queries.json"

_FILTER_FIELDS = ("conversation_id", "role", "date_from", "date_to")


@dataclass
class EvalCase:
    query: str
    expected_any_of: list[str]
    filters: SearchFilters | None = None


@dataclass
class EvalDetail:
    query: str
    hit: bool
    first_relevant_rank: int | None


@dataclass
class EvalReport:
    query_count: int
    hit_rate_at_k: float
    mrr_at_k: float
    details: list[EvalDetail] = field(default_factory=list)


def _case_from_dict(raw: Any, index: int) -> EvalCase:
    if not isinstance(raw, dict) or not isinstance(raw.get("query"), str):
        raise ValueError(f"Eval case #{index + 1} must be a mapping with a 'query' string.")
    expected = raw.get("expected_any_of", raw.get("expectedAnyOf", []))
    if not isinstance(expected, list) or not all(isinstance(e, str) for e in expected):
        raise ValueError(f"Eval case #{index + 1}: 'expected_any_of' must be a list of strings.")

    filters = None
    raw_filters = raw.get("filters")
    if isinstance(raw_filters, dict) and raw_filters:
        filters = SearchFilters(**{k: raw_filters[k] for k in _FILTER_FIELDS if raw_filters.get(k)})
    return EvalCase(query=raw["query"], expected_any_of=expected, filters=filters)


def load_eval_cases(path: Path | str) -> list[EvalCase]:
    """Read eval cases from a JSON or YAML (.yaml / .yml) list.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the document is not a list of valid cases.
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text) if p.suffix.lower() in (".yaml", ".yml") else json.loads(text)
    if not isinstance(data, list):
        raise ValueError(f"Eval file '{p}' must contain a list of cases.")
    return [_case_from_dict(raw, i) for i, raw in enumerate(data)]


def evaluate(search_service: SearchService, cases: list[EvalCase], top_k: int = 10) -> EvalReport:
    """Run every case through hybrid search and score hit rate / MRR at *top_k*."""
    hits = 0
    reciprocal_rank_sum = 0.0
    details: list[EvalDetail] = []

    for case in cases:
        results = search_service.search_hybrid(case.query, case.filters, top_k)
        needles = [e.lower() for e in case.expected_any_of]

        first_rank: int | None = None
        for result in results:
            haystack = f"{result.content}\n{result.snippet}\n{result.conversation_title}".lower()
            if any(needle in haystack for needle in needles):
                first_rank = result.rank
                break

        if first_rank is not None:
            hits += 1
            reciprocal_rank_sum += 1.0 / first_rank
        details.append(EvalDetail(case.query, first_rank is not None, first_rank))

    total = len(cases) or 1
    return EvalReport(
        query_count=len(cases),
        hit_rate_at_k=hits / total,
        mrr_at_k=reciprocal_rank_sum / total,
        details=details,
    )
