"""Tests for cosine similarity and Reciprocal Rank Fusion."""

from __future__ import annotations

import pytest

from chatindex.rag.ranking import cosine_similarity, reciprocal_rank_fusion


def test_cosine_identical_vectors():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_orthogonal():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


def test_cosine_opposite():
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


@pytest.mark.parametrize(
    ("a", "b"),
    [([], []), ([1.0], [1.0, 2.0]), ([0.0, 0.0], [1.0, 1.0])],
)
def test_cosine_degenerate_inputs_are_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


def test_rrf_scores():
    fused = dict(reciprocal_rank_fusion([["a", "b"], ["b", "c"]], k=60))
    assert fused["a"] == pytest.approx(1 / 61)
    assert fused["b"] == pytest.approx(1 / 62 + 1 / 61)
    assert fused["c"] == pytest.approx(1 / 62)


def test_rrf_orders_best_first():
    fused = reciprocal_rank_fusion([["a", "b"], ["b", "c"]])
    assert [item for item, _ in fused] == ["b", "a", "c"]


def test_rrf_ties_keep_first_seen_order():
    fused = reciprocal_rank_fusion([["x"], ["y"]])
    assert [item for item, _ in fused] == ["x", "y"]


def test_rrf_deterministic():
    lists = [["a", "b", "c"], ["c", "a", "d"]]
    assert reciprocal_rank_fusion(lists) == reciprocal_rank_fusion(lists)


def test_rrf_empty():
    assert reciprocal_rank_fusion([[], []]) == []
