import threading
import time

import numpy as np
import pytest

from utils.cache import EmbeddingCache
from utils.rate_limiter import RateLimiter
from utils.settings import Settings


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def test_rate_limiter_waits_for_window():
    clock = FakeClock()
    limiter = RateLimiter(2, period=10.0, clock=clock, sleep=clock.sleep)

    limiter.acquire()
    limiter.acquire()
    assert clock.now == 0.0
    limiter.acquire()
    assert clock.now == pytest.approx(10.0)
    assert limiter.in_window() == 1


def test_rate_limiter_rejects_zero():
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_cache_lru_eviction():
    cache = EmbeddingCache(max_size=2)
    cache.set("a", np.array([1.0]))
    cache.set("b", np.array([2.0]))
    assert cache.get("a") is not None  # a is now most recent
    cache.set("c", np.array([3.0]))

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert cache.get("c") is not None
    assert cache.get_stats()["evictions"] == 1


def test_cache_ttl_expiry():
    clock = FakeClock()
    cache = EmbeddingCache(max_size=4, ttl=5, clock=clock)
    cache.set("k", np.array([1.0]))
    clock.now = 4.0
    assert cache.get("k") is not None
    clock.now = 10.0
    assert cache.get("k") is None
    assert cache.get_stats()["expirations"] == 1
    assert len(cache) == 0


def test_cache_key_depends_on_model_and_text():
    k1 = EmbeddingCache.make_key("m1", "hello")
    assert k1 == EmbeddingCache.make_key("m1", "hello")
    assert k1 != EmbeddingCache.make_key("m2", "hello")
    assert k1 != EmbeddingCache.make_key("m1", "hello ")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("EMBED_PROVIDER", "HASH")
    monkeypatch.setenv("RECO_TOP_K", "5")
    monkeypatch.setenv("EMBED_TIMEOUT", "2.5")
    monkeypatch.delenv("HUGGINGFACE_TOKEN", raising=False)
    settings = Settings.from_env()
    assert settings.embed_provider == "hash"
    assert settings.top_k == 5
    assert settings.embed_timeout == 2.5
    assert settings.hf_token is None


def test_settings_rejects_bad_values(monkeypatch):
    monkeypatch.setenv("RECO_TOP_K", "ten")
    with pytest.raises(ValueError):
        Settings.from_env()
    monkeypatch.setenv("RECO_TOP_K", "0")
    with pytest.raises(ValueError):
        Settings.from_env()


def test_rate_limiter_gives_up_when_aborted():
    limiter = RateLimiter(1, period=60.0)
    assert limiter.acquire() is True

    abort = threading.Event()
    timer = threading.Timer(0.05, abort.set)
    timer.start()
    started = time.monotonic()
    assert limiter.acquire(abort) is False
    assert time.monotonic() - started < 5
    assert limiter.in_window() == 1


def test_rate_limiter_abort_already_set():
    limiter = RateLimiter(5)
    abort = threading.Event()
    abort.set()
    assert limiter.acquire(abort) is False
    assert limiter.in_window() == 0
