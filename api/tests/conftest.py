from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from models.recommender import RecommendRequest
from services.embeddings import EmbeddingProvider
from services.recommender import RecommenderService

FIXED_NOW = "2024-10-02T18:30:00.000Z"


class StubProvider(EmbeddingProvider):
    """Deterministic provider: returns queued vectors or a per-text lookup."""

    name = "stub"

    def __init__(
        self,
        vectors: Optional[Sequence[Sequence[float]]] = None,
        by_text: Optional[Dict[str, Sequence[float]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.vectors = vectors
        self.by_text = by_text or {}
        self.error = error
        self.calls: List[List[str]] = []

    def embed(self, texts, abort=None):
        texts = list(texts)
        self.calls.append(texts)
        if self.error is not None:
            raise self.error
        if self.vectors is not None:
            return [np.asarray(v, dtype=np.float32) for v in self.vectors]
        return [np.asarray(self.by_text.get(t, [0.0, 0.0]), dtype=np.float32) for t in texts]


def make_request(items, **kwargs) -> RecommendRequest:
    return RecommendRequest(candidate_items=items, **kwargs)


@pytest.fixture
def stub_factory():
    return StubProvider


@pytest.fixture
def service_factory():
    def _build(provider, **kwargs):
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        return RecommenderService(provider, **kwargs)

    return _build
