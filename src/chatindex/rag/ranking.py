"""Ranking primitives: cosine similarity and Reciprocal Rank Fusion.

Reciprocal Rank Fusion:
  score(d) = sum over lists of 1 / (k + rank_in_list)   k = 60, rank 1-based
"""

from __future__ import annotations

import math
from collections.abc import Sequence

DEFAULT_RRF_K = 60


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Returns 0.0 for vectors of different length, empty vectors, or when
    either vector has zero norm.
    """
    if len(a) != len(b) or not a:
        return 0.0

    dot = norm_a = norm_b = 0.0
    for av, bv in zip(a, b):
        dot += av * bv
        norm_a += av * av
        norm_b += bv * bv

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Sequence[str]],
    k: int = DEFAULT_RRF_K,
) -> list[tuple[str, float]]:
    """Fuse ranked id lists into one (id, score) list, best-first.

    Ties keep first-seen order (list order, then position), so the result is
    fully deterministic for fixed inputs.
    """
    scores: dict[str, float] = {}
    for ranked in ranked_lists:
        for index, item_id in enumerate(ranked):
            scores[item_id] = scores.get(item_id, 0.0) + 1.0 / (k + index + 1)

    return sorted(scores.items(), key=lambda entry: entry[1], reverse=True)
