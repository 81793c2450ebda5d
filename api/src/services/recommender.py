from __future__ import annotations
"""
Context-aware ranking of caller-supplied candidate items.

Per request the service:

1. Synthesizes a context string for the requesting user and situation
   (identity, location, time, festival/weather signals).
2. Projects every candidate item into one descriptive string.
3. Embeds `[context, item_1, ..., item_n]` in a *single* batched call to the
   configured embedding backend. The call runs in a worker thread so the event
   loop stays free, and it is bounded by `embed_timeout`.
4. Scores each item vector against the context vector with cosine similarity
   and returns the top-k ids, best first.

Any backend failure aborts the request with `RankingFailed`; there is no
fallback to an unranked list, so an empty result always means "nothing to
rank" and never "ranking broke".
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from models.recommender import ItemId, RecommendRequest
from services.embeddings import EmbeddingProvider
from services.errors import (
    InvalidRequest,
    ProviderError,
    ProviderMalformedResponse,
    ProviderUnavailable,
    RankingFailed,
)
from services.ranking import DEFAULT_TOP_K, rank_items
from services.text import build_context_string, build_item_texts, utc_now_iso

LOGGER = logging.getLogger(__name__)


class RecommenderService:
    """Stateless ranking pipeline around a shared embedding provider."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        top_k: int = DEFAULT_TOP_K,
        max_candidates: Optional[int] = 500,
        embed_timeout: float = 10.0,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.provider = provider
        self.top_k = top_k
        self.max_candidates = max_candidates
        self.embed_timeout = embed_timeout
        self._clock = clock

    def build_texts(self, request: RecommendRequest) -> List[str]:
        """Embedding inputs: the context string first, then one string per candidate."""
        context = build_context_string(request, clock=self._clock)
        return [context, *build_item_texts(request.candidate_items)]

    async def _embed(self, texts: List[str]):
        # the worker thread outlives a timeout or cancellation; `abort` tells it to stop
        abort = threading.Event()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.provider.embed, texts, abort=abort),
                timeout=self.embed_timeout,
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError as exc:
            abort.set()
            raise ProviderUnavailable(
                f"embedding call exceeded {self.embed_timeout}s"
            ) from exc
        except asyncio.CancelledError:
            abort.set()
            raise
        except Exception as exc:
            LOGGER.exception("Embedding backend raised an unexpected error")
            raise ProviderUnavailable(
                f"embedding backend failed: {exc}",
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc

    async def recommend(self, request: RecommendRequest) -> List[ItemId]:
        """Return candidate ids ranked by similarity to the request context."""
        candidates = request.candidate_items
        if self.max_candidates is not None and len(candidates) > self.max_candidates:
            raise InvalidRequest(
                f"too many candidate_items: {len(candidates)} > {self.max_candidates}"
            )
        if not candidates:
            return []

        texts = self.build_texts(request)
        started = time.perf_counter()
        try:
            vectors = await self._embed(texts)
            if len(vectors) != len(texts):
                raise ProviderMalformedResponse(
                    f"expected {len(texts)} vectors, got {len(vectors)}",
                    detail={"expected": len(texts), "received": len(vectors)},
                )
        except ProviderError as exc:
            LOGGER.error(
                "Embedding failed (%s, status=%s) for %d candidates: %s",
                exc.kind,
                exc.status,
                len(candidates),
                exc,
            )
            raise RankingFailed(exc) from exc

        context_vec, item_vecs = vectors[0], vectors[1:]
        ranked = rank_items(
            context_vec,
            item_vecs,
            [item.id for item in candidates],
            k=self.top_k,
        )
        LOGGER.info(
            "Ranked %d candidates -> %d results in %.3fs",
            len(candidates),
            len(ranked),
            time.perf_counter() - started,
        )
        return ranked

    def get_info(self) -> Dict[str, Any]:
        return {
            "top_k": self.top_k,
            "max_candidates": self.max_candidates,
            "embed_timeout": self.embed_timeout,
            "provider": self.provider.get_info(),
        }
