import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_HF_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_HF_URL = "https://router.huggingface.co/hf-inference/models"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once from the environment at startup."""

    embed_provider: str = "huggingface"
    hf_model: str = DEFAULT_HF_MODEL
    hf_token: Optional[str] = None
    hf_url: str = DEFAULT_HF_URL

    vertex_project: Optional[str] = None
    vertex_location: str = "us-central1"
    vertex_text_model: str = "gemini-embedding-001"
    vertex_text_task: str = "SEMANTIC_SIMILARITY"
    vertex_text_dim: int = 768
    vertex_text_batch: int = 250

    hash_embed_dim: int = 384

    embed_timeout: float = 10.0
    embed_max_retries: int = 2
    embed_cache_size: int = 0
    embed_cache_ttl: int = 3600
    embed_rate_limit: int = 0
    embed_rate_period: float = 60.0

    top_k: int = 10
    max_candidates: int = 500

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            embed_provider=os.environ.get("EMBED_PROVIDER", "huggingface").lower(),
            hf_model=os.environ.get("HF_EMBED_MODEL", DEFAULT_HF_MODEL),
            hf_token=os.environ.get("HUGGINGFACE_TOKEN") or None,
            hf_url=os.environ.get("HF_INFERENCE_URL", DEFAULT_HF_URL).rstrip("/"),
            vertex_project=os.environ.get("VERTEX_PROJECT") or None,
            vertex_location=os.environ.get("VERTEX_LOCATION", "us-central1"),
            vertex_text_model=os.environ.get("VERTEX_TEXT_MODEL", "gemini-embedding-001"),
            vertex_text_task=os.environ.get("VERTEX_TEXT_TASK", "SEMANTIC_SIMILARITY"),
            vertex_text_dim=_env_int("VERTEX_TEXT_DIM", 768),
            vertex_text_batch=_env_int("VERTEX_TEXT_BATCH", 250),
            hash_embed_dim=_env_int("HASH_EMBED_DIM", 384),
            embed_timeout=_env_float("EMBED_TIMEOUT", 10.0),
            embed_max_retries=_env_int("EMBED_MAX_RETRIES", 2),
            embed_cache_size=_env_int("EMBED_CACHE_SIZE", 0),
            embed_cache_ttl=_env_int("EMBED_CACHE_TTL", 3600),
            embed_rate_limit=_env_int("EMBED_RATE_LIMIT", 0),
            embed_rate_period=_env_float("EMBED_RATE_PERIOD", 60.0),
            top_k=_env_int("RECO_TOP_K", 10),
            max_candidates=_env_int("RECO_MAX_CANDIDATES", 500),
        )
        if settings.top_k < 1:
            raise ValueError("RECO_TOP_K must be >= 1")
        if settings.embed_timeout <= 0:
            raise ValueError("EMBED_TIMEOUT must be positive")
        return settings
