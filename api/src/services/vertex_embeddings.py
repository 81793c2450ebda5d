from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Sequence

import backoff
import numpy as np
import vertexai
from google.api_core import exceptions as g_exceptions
from vertexai.language_models import TextEmbeddingInput, TextEmbeddingModel

from services.embeddings import EmbeddingProvider, check_abandoned, validate_vectors
from services.errors import ProviderRejected, ProviderUnavailable
from utils.rate_limiter import RateLimiter
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

_VERTEX_READY = False


def _ensure_vertex_initialized(project: Optional[str], location: str) -> None:
    global _VERTEX_READY
    if _VERTEX_READY:
        return
    if not project:
        raise EnvironmentError("VERTEX_PROJECT must be set to use Vertex AI embeddings.")
    vertexai.init(project=project, location=location)
    _VERTEX_READY = True


def _batch(seq: List[str], size: int) -> Iterator[List[str]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


class VertexEmbeddingProvider(EmbeddingProvider):
    """Vertex AI text embeddings, sent in model-sized chunks of one batch."""

    def __init__(
        self,
        model: TextEmbeddingModel,
        *,
        model_name: str,
        task: str = "SEMANTIC_SIMILARITY",
        dim: Optional[int] = None,
        batch_size: int = 250,
        timeout: float = 10.0,
        max_retries: int = 2,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._model = model
        self.model_name = model_name
        self.name = f"vertex:{model_name}"
        self.task = task
        self.dim = dim
        self.batch_size = max(1, batch_size)
        self.timeout = timeout
        self._rate_limiter = rate_limiter
        self._get_embeddings = backoff.on_exception(
            backoff.expo,
            (
                g_exceptions.ServiceUnavailable,  # 503 / transient
                g_exceptions.TooManyRequests,     # 429
            ),
            max_tries=max(0, max_retries) + 1,
            max_time=timeout,
            jitter=backoff.full_jitter,
        )(self._call_model)

    @classmethod
    def from_settings(
        cls, settings: Settings, rate_limiter: Optional[RateLimiter] = None
    ) -> "VertexEmbeddingProvider":
        _ensure_vertex_initialized(settings.vertex_project, settings.vertex_location)
        model = TextEmbeddingModel.from_pretrained(settings.vertex_text_model)
        LOGGER.info(
            "Vertex text embeddings via %s (task=%s, dim=%s, batch=%d)",
            settings.vertex_text_model,
            settings.vertex_text_task,
            settings.vertex_text_dim,
            settings.vertex_text_batch,
        )
        return cls(
            model,
            model_name=settings.vertex_text_model,
            task=settings.vertex_text_task,
            dim=settings.vertex_text_dim or None,
            batch_size=settings.vertex_text_batch,
            timeout=settings.embed_timeout,
            max_retries=settings.embed_max_retries,
            rate_limiter=rate_limiter,
        )

    def _call_model(
        self, inputs: List[TextEmbeddingInput], abort: Optional[threading.Event] = None
    ):
        check_abandoned(abort)
        if self._rate_limiter is not None:
            self._rate_limiter.acquire(abort)
            check_abandoned(abort)
        kwargs: Dict[str, Any] = {}
        if self.dim:
            kwargs["output_dimensionality"] = self.dim
        return self._model.get_embeddings(inputs, **kwargs)

    def embed(
        self, texts: Sequence[str], abort: Optional[threading.Event] = None
    ) -> List[np.ndarray]:
        texts = list(texts)
        if not texts:
            return []
        raw: List[Any] = []
        for chunk in _batch(texts, self.batch_size):
            inputs = [TextEmbeddingInput(text, task_type=self.task) for text in chunk]
            try:
                result = self._get_embeddings(inputs, abort)
            except g_exceptions.ClientError as exc:
                raise ProviderRejected(
                    f"Vertex rejected the request: {exc}",
                    status=int(exc.code) if exc.code else None,
                    detail=getattr(exc, "message", str(exc)),
                ) from exc
            except g_exceptions.GoogleAPIError as exc:
                LOGGER.error("Vertex text embedding call failed: %s", exc)
                raise ProviderUnavailable(
                    f"Vertex unavailable: {exc}",
                    status=int(exc.code) if getattr(exc, "code", None) else None,
                    detail=str(exc),
                ) from exc
            raw.extend(r.values for r in result)
        return validate_vectors(raw, len(texts))

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({"model": self.model_name, "task": self.task, "dim": self.dim})
        return info
