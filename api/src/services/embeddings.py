from __future__ import annotations
"""
Embedding backends for the ranking service.

Every backend turns an ordered batch of strings into the same number of
vectors, in the same order, in a single logical call. Callers depend only on
`EmbeddingProvider.embed`; the network I/O lives entirely behind it so the
ranking logic can run against a deterministic stub.

Backends:
    - `HuggingFaceEmbeddingProvider`: hosted feature-extraction endpoint
      (default, `sentence-transformers/all-MiniLM-L6-v2`).
    - `VertexEmbeddingProvider` (services/vertex_embeddings.py): Vertex AI
      text embedding models.
    - `HashEmbeddingProvider`: offline, deterministic vectors for local work.

`CachedEmbeddingProvider` wraps any of them with an owned `EmbeddingCache`.
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import backoff
import numpy as np
import requests

from services.errors import (
    EmbeddingAbandoned,
    ProviderMalformedResponse,
    ProviderRejected,
    ProviderUnavailable,
)
from utils.cache import EmbeddingCache
from utils.rate_limiter import RateLimiter
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

_NUMERIC_KINDS = {"i", "u", "f"}


def check_abandoned(abort: Optional[threading.Event]) -> None:
    """Raise `EmbeddingAbandoned` once the caller has stopped waiting."""
    if abort is not None and abort.is_set():
        raise EmbeddingAbandoned("caller stopped waiting; embedding call not sent")


def validate_vectors(payload: Any, expected: int) -> List[np.ndarray]:
    """Check a raw backend payload and convert it to float32 vectors.

    Token-level outputs (one row per token) are mean-pooled into a single
    vector. Raises `ProviderMalformedResponse` on any count, shape or type
    mismatch.
    """
    if not isinstance(payload, (list, tuple)):
        raise ProviderMalformedResponse(
            f"expected a list of vectors, got {type(payload).__name__}"
        )
    if len(payload) != expected:
        raise ProviderMalformedResponse(
            f"expected {expected} vectors, got {len(payload)}",
            detail={"expected": expected, "received": len(payload)},
        )

    vectors: List[np.ndarray] = []
    for idx, raw in enumerate(payload):
        try:
            arr = np.asarray(raw)
        except (TypeError, ValueError) as exc:
            raise ProviderMalformedResponse(f"vector {idx} is not a numeric array") from exc
        if arr.dtype.kind not in _NUMERIC_KINDS:
            raise ProviderMalformedResponse(f"vector {idx} is not numeric (dtype={arr.dtype})")
        if arr.ndim == 2 and arr.shape[0] > 0:
            arr = arr.mean(axis=0)
        if arr.ndim != 1 or arr.size == 0:
            raise ProviderMalformedResponse(f"vector {idx} is empty or has shape {arr.shape}")
        arr = arr.astype(np.float32)
        if not np.all(np.isfinite(arr)):
            raise ProviderMalformedResponse(f"vector {idx} contains non-finite values")
        vectors.append(arr)
    return vectors


class EmbeddingProvider(ABC):
    """Text-to-vector backend. Implementations must be safe for concurrent use."""

    name = "base"

    @abstractmethod
    def embed(
        self, texts: Sequence[str], abort: Optional[threading.Event] = None
    ) -> List[np.ndarray]:
        """Embed `texts`, returning exactly one vector per input, in input order.

        `abort` is set by the caller when it gives up; backends must not send
        (or retry) network calls after that.
        """

    def get_info(self) -> Dict[str, Any]:
        return {"provider": self.name, "type": self.__class__.__name__}

    def close(self) -> None:
        """Release pooled connections, if any."""


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Batched client for the Hugging Face feature-extraction pipeline."""

    def __init__(
        self,
        model: str,
        *,
        token: Optional[str] = None,
        base_url: str = "https://router.huggingface.co/hf-inference/models",
        timeout: float = 10.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.model = model
        self.name = f"huggingface:{model}"
        self.endpoint = f"{base_url.rstrip('/')}/{model}/pipeline/feature-extraction"
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self._session = session or requests.Session()
        self._rate_limiter = rate_limiter
        # headers are fixed at construction; nothing per request touches shared state
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

        self._post_with_retry = backoff.on_exception(
            backoff.expo,
            ProviderUnavailable,
            max_tries=self.max_retries + 1,
            max_time=self.timeout,
            jitter=backoff.full_jitter,
            giveup=lambda exc: isinstance(exc, EmbeddingAbandoned),
        )(self._post)

    def embed(
        self, texts: Sequence[str], abort: Optional[threading.Event] = None
    ) -> List[np.ndarray]:
        texts = list(texts)
        if not texts:
            return []
        payload = self._post_with_retry(texts, abort)
        return validate_vectors(payload, len(texts))

    def _post(self, texts: List[str], abort: Optional[threading.Event] = None) -> Any:
        check_abandoned(abort)
        if self._rate_limiter is not None:
            self._rate_limiter.acquire(abort)
            check_abandoned(abort)
        body = {"inputs": texts, "options": {"wait_for_model": True}}
        try:
            resp = self._session.post(
                self.endpoint, json=body, headers=self._headers, timeout=self.timeout
            )
        except requests.Timeout as exc:
            raise ProviderUnavailable(
                f"embedding request timed out after {self.timeout}s"
            ) from exc
        except requests.ConnectionError as exc:
            raise ProviderUnavailable(f"cannot reach embedding service: {exc}") from exc
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"embedding request failed: {exc}") from exc

        if resp.status_code >= 500:
            LOGGER.warning("Embedding service %s returned %d", self.model, resp.status_code)
            raise ProviderUnavailable(
                f"embedding service error {resp.status_code}",
                status=resp.status_code,
                detail=_response_detail(resp),
            )
        if resp.status_code >= 400:
            raise ProviderRejected(
                f"embedding service rejected the request ({resp.status_code})",
                status=resp.status_code,
                detail=_response_detail(resp),
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderMalformedResponse("embedding service returned non-JSON body") from exc

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({"model": self.model, "timeout": self.timeout, "max_retries": self.max_retries})
        return info

    def close(self) -> None:
        self._session.close()


def _response_detail(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:500]


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic pseudo-embeddings seeded from the text hash (no network)."""

    def __init__(self, dim: int = 384) -> None:
        if dim < 1:
            raise ValueError("dim must be >= 1")
        self.dim = dim
        self.name = f"hash:{dim}"

    def _vector(self, text: str) -> np.ndarray:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        vec = rng.normal(size=self.dim).astype(np.float32)
        return vec / (np.linalg.norm(vec) + 1e-12)

    def embed(
        self, texts: Sequence[str], abort: Optional[threading.Event] = None
    ) -> List[np.ndarray]:
        return [self._vector(t) for t in texts]

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info["dim"] = self.dim
        return info


class CachedEmbeddingProvider(EmbeddingProvider):
    """Serve repeated texts from an `EmbeddingCache`; fetch the rest in one batch."""

    def __init__(self, inner: EmbeddingProvider, cache: EmbeddingCache) -> None:
        self.inner = inner
        self.cache = cache
        self.name = inner.name

    def embed(
        self, texts: Sequence[str], abort: Optional[threading.Event] = None
    ) -> List[np.ndarray]:
        texts = list(texts)
        keys = [EmbeddingCache.make_key(self.inner.name, t) for t in texts]
        vectors: List[Optional[np.ndarray]] = [self.cache.get(k) for k in keys]

        missing: Dict[str, List[int]] = {}
        for idx, vec in enumerate(vectors):
            if vec is None:
                missing.setdefault(texts[idx], []).append(idx)

        if missing:
            fresh_texts = list(missing)
            fresh = self.inner.embed(fresh_texts, abort)
            if len(fresh) != len(fresh_texts):
                raise ProviderMalformedResponse(
                    f"expected {len(fresh_texts)} vectors, got {len(fresh)}"
                )
            for text, vec in zip(fresh_texts, fresh):
                for idx in missing[text]:
                    vectors[idx] = vec
                self.cache.set(keys[missing[text][0]], vec)
            LOGGER.debug(
                "Embedding cache: %d hits, %d fetched",
                len(texts) - sum(map(len, missing.values())),
                len(fresh_texts),
            )

        return vectors  # type: ignore[return-value]

    def get_info(self) -> Dict[str, Any]:
        info = self.inner.get_info()
        info["cache"] = self.cache.get_stats()
        return info

    def close(self) -> None:
        self.inner.close()


def build_provider(settings: Settings) -> EmbeddingProvider:
    """Construct the configured backend, wrapped in a cache when enabled."""
    limiter = None
    if settings.embed_rate_limit > 0:
        limiter = RateLimiter(settings.embed_rate_limit, settings.embed_rate_period)

    kind = settings.embed_provider
    provider: EmbeddingProvider
    if kind in ("huggingface", "hf"):
        if not settings.hf_token:
            LOGGER.warning("HUGGINGFACE_TOKEN is not set; anonymous requests may be rejected.")
        provider = HuggingFaceEmbeddingProvider(
            settings.hf_model,
            token=settings.hf_token,
            base_url=settings.hf_url,
            timeout=settings.embed_timeout,
            max_retries=settings.embed_max_retries,
            rate_limiter=limiter,
        )
    elif kind == "vertex":
        from services.vertex_embeddings import VertexEmbeddingProvider

        provider = VertexEmbeddingProvider.from_settings(settings, rate_limiter=limiter)
    elif kind == "hash":
        provider = HashEmbeddingProvider(settings.hash_embed_dim)
    else:
        raise ValueError(f"Unknown EMBED_PROVIDER {kind!r} (expected huggingface, vertex or hash)")

    if settings.embed_cache_size > 0:
        cache = EmbeddingCache(max_size=settings.embed_cache_size, ttl=settings.embed_cache_ttl)
        provider = CachedEmbeddingProvider(provider, cache)

    LOGGER.info("Embedding provider ready: %s", provider.get_info())
    return provider
