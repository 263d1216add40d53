# rag_orchestrator/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

import math
import re
from collections.abc import Sequence

from rag_orchestrator.domain.models import RetrievedSnippet

_WORD = re.compile(r"\w+")


def _cos_sim(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; normalizes on the fly so unnormalized vectors work."""
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    na = math.sqrt(sum(x * x for x in a)) or 1.0
    nb = math.sqrt(sum(y * y for y in b)) or 1.0
    return dot / (na * nb)


def _token_overlap(a: str, b: str) -> float:
    """Jaccard overlap of lower-cased word sets (fallback when vectors are absent)."""
    ta = set(_WORD.findall(a.casefold()))
    tb = set(_WORD.findall(b.casefold()))
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def pairwise_similarity(a: RetrievedSnippet, b: RetrievedSnippet) -> float:
    if a.vector is not None and b.vector is not None:
        return _cos_sim(a.vector, b.vector)
    return _token_overlap(a.content, b.content)


def sort_by_distance(snippets: Sequence[RetrievedSnippet]) -> list[RetrievedSnippet]:
    """Ascending distance; stable, so backend order breaks ties."""
    return sorted(snippets, key=lambda s: s.distance)


def mmr(
    candidates: Sequence[RetrievedSnippet],
    top_k: int,
    lambda_mult: float = 0.5,
) -> list[RetrievedSnippet]:
    """
    Maximal Marginal Relevance selection over already-ranked candidates.

    Query relevance is the snippet's ``similarity`` (derived from the backend
    distance), so no query vector is needed. Redundancy between candidates is
    cosine over ``vector`` when both have one, word overlap otherwise.

    Returns the selection in pick order; callers re-sort by distance.
    """
    if top_k <= 0:
        return []

    selected: list[int] = []
    remaining: list[int] = list(range(len(candidates)))

    while remaining and len(selected) < top_k:
        best_idx = remaining[0]
        best_score = -math.inf

        for i in remaining:
            diversity = 0.0
            if selected:
                diversity = max(pairwise_similarity(candidates[i], candidates[j]) for j in selected)
            score = lambda_mult * candidates[i].similarity - (1.0 - lambda_mult) * diversity
            if score > best_score:
                best_score = score
                best_idx = i

        selected.append(best_idx)
        remaining.remove(best_idx)

    return [candidates[i] for i in selected]
