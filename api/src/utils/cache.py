"""
LRU + TTL cache for embedding vectors, keyed by model and text.

Owned by whoever builds it (the embedding provider factory); there is no
module-level instance.
"""
import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import numpy as np


@dataclass
class CacheEntry:
    vector: np.ndarray
    stored_at: float
    hits: int = 0


class EmbeddingCache:
    """
    Bounded LRU cache with a time-to-live per entry.

    Eviction:
        - entries older than `ttl` seconds are dropped on read
        - when full, the least recently used entry is dropped on write
    """

    def __init__(
        self,
        max_size: int = 1024,
        ttl: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "expirations": 0}

    @staticmethod
    def make_key(model: str, text: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{model}:{digest}"

    def get(self, key: str) -> Optional[np.ndarray]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            if self._clock() - entry.stored_at > self.ttl:
                del self._entries[key]
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            entry.hits += 1
            self._stats["hits"] += 1
            return entry.vector

    def set(self, key: str, vector: np.ndarray) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1
            self._entries[key] = CacheEntry(vector=vector, stored_at=self._clock())
            self._entries.move_to_end(key)

    def clear(self) -> None:
        with self._lock:
            self._stats["evictions"] += len(self._entries)
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl": self.ttl,
                "hit_rate": round(self._stats["hits"] / total, 4) if total else 0.0,
                **self._stats,
            }
