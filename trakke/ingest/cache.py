"""
In-memory result cache keyed by (source query, quantized bbox).

Entries expire after a fixed TTL (10 minutes by default) or on ``clear()``.
Only successful, cacheable fetch outcomes are stored.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import CACHE_TTL_S
from ..geo.bounds import ViewportWindow, quantize

log = logging.getLogger(__name__)

CacheKey = Tuple[str, Tuple[float, float, float, float]]


@dataclass
class CacheEntry:
    key: CacheKey
    payload: Any
    stored_at: float


def cache_key(query_key: str, viewport: ViewportWindow) -> CacheKey:
    return query_key, quantize(viewport)


class ResultCache:
    def __init__(self, ttl_s: float = CACHE_TTL_S,
                 clock: Callable[[], float] = time.monotonic):
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.stored_at > self._ttl_s:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.payload

    def put(self, key: CacheKey, payload: Any) -> None:
        self._entries[key] = CacheEntry(key, payload, self._clock())

    def clear(self) -> None:
        log.info("Clearing %d cached results", len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
