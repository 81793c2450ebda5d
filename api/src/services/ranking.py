from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from models.recommender import ItemId

EPS = 1e-12
DEFAULT_TOP_K = 10


@dataclass(frozen=True)
class ScoredItem:
    id: ItemId
    score: float


def cosine_similarity(a: np.ndarray, b: np.ndarray, eps: float = EPS) -> float:
    """Cosine over the overlapping leading dimensions of `a` and `b`.

    Vectors of unequal length are truncated to the shorter one; an all-zero
    side yields 0.0 because of the `eps` in the denominator.
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    a = np.asarray(a[:n], dtype=np.float64)
    b = np.asarray(b[:n], dtype=np.float64)
    denom = np.linalg.norm(a) * np.linalg.norm(b) + eps
    return float(np.dot(a, b) / denom)


def score_items(
    context_vec: np.ndarray,
    item_vecs: Sequence[np.ndarray],
    item_ids: Sequence[ItemId],
) -> List[ScoredItem]:
    if len(item_vecs) != len(item_ids):
        raise ValueError(f"{len(item_vecs)} item vectors for {len(item_ids)} ids")
    return [
        ScoredItem(id=iid, score=cosine_similarity(context_vec, vec))
        for iid, vec in zip(item_ids, item_vecs)
    ]


def rank_items(
    context_vec: np.ndarray,
    item_vecs: Sequence[np.ndarray],
    item_ids: Sequence[ItemId],
    k: int = DEFAULT_TOP_K,
) -> List[ItemId]:
    """Return up to `k` ids ordered by descending similarity to the context.

    The sort is stable, so equal scores keep their candidate order.
    """
    scored = score_items(context_vec, item_vecs, item_ids)
    if not scored:
        return []
    scores = np.fromiter((s.score for s in scored), dtype=np.float64, count=len(scored))
    order = np.argsort(-scores, kind="stable")[:k]
    return [scored[i].id for i in order]
