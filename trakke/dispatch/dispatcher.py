"""
Viewport dispatcher — one coordinated round of adapter calls per change.

Data flow
─────────
  viewport settle / category toggle
    → active codes → adapters + sub-queries
    → cache lookup (query key + quantized bbox)
    → misses fetched concurrently (asyncio.gather)
    → normalize, drop out-of-bounds, de-duplicate by id
    → keep only POIs inside the requested viewport
    → merge custom POIs for the active codes
    → apply, unless a later cycle has already been applied

Every cycle gets a sequence number.  Network calls are never cancelled;
a cycle that finishes after a newer one has been applied is discarded.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..geo.bounds import ViewportWindow, quantized_window
from ..ingest import FetchOutcome, SourceAdapter, SourceQuery, index_by_category
from ..ingest.cache import ResultCache, cache_key
from ..poi.custom import CustomPOIProvider
from ..poi.model import POI, RasterLayerDescriptor
from ..poi.normalize import normalize_all

log = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    sequence: int
    pois: List[POI] = field(default_factory=list)
    layers: List[RasterLayerDescriptor] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    degraded_sources: List[str] = field(default_factory=list)
    applied: bool = False

    @classmethod
    def empty(cls, sequence: int) -> "DispatchResult":
        """The no-categories-selected state."""
        return cls(sequence=sequence)

    @property
    def summary(self) -> Optional[str]:
        return summarize_warnings(self.failed_sources, self.degraded_sources)


def summarize_warnings(failed: Sequence[str], degraded: Sequence[str]) -> Optional[str]:
    """One banner line naming the affected sources, no error detail."""
    parts = []
    if failed:
        parts.append(f"Kunne ikke hente data fra {', '.join(failed)}. "
                     "Kartet viser det som ble lastet.")
    if degraded:
        parts.append(f"Viser demonstrasjonsdata for {', '.join(degraded)}.")
    return " ".join(parts) or None


class ViewportDispatcher:
    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        cache: ResultCache,
        custom: Optional[CustomPOIProvider] = None,
        on_result: Optional[Callable[[DispatchResult], None]] = None,
    ):
        self._index = index_by_category(list(adapters))
        self._cache = cache
        self._custom = custom or CustomPOIProvider()
        self._on_result = on_result
        self._sequence = 0
        self._applied_sequence = 0
        self.last_result: Optional[DispatchResult] = None

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _apply(self, result: DispatchResult) -> DispatchResult:
        if result.sequence <= self._applied_sequence:
            log.debug("Discarding stale cycle %d (cycle %d already applied)",
                      result.sequence, self._applied_sequence)
            return result
        result.applied = True
        self._applied_sequence = result.sequence
        self.last_result = result
        if self._on_result is not None:
            self._on_result(result)
        return result

    def clear(self) -> DispatchResult:
        """Apply an empty result right away, superseding cycles in flight."""
        return self._apply(DispatchResult.empty(self._next_sequence()))

    async def _run_query(
        self, adapter: SourceAdapter, window: ViewportWindow, query: SourceQuery,
    ) -> Tuple[SourceQuery, FetchOutcome]:
        key = cache_key(query.cache_name, window)
        cached = self._cache.get(key)
        if cached is not None:
            log.debug("Cache hit for %s", query.cache_name)
            return query, FetchOutcome(records=list(cached))
        outcome = await adapter.fetch_query(window, query)
        if outcome.cacheable and outcome.warning is None:
            self._cache.put(key, list(outcome.records))
        return query, outcome

    async def dispatch(self, viewport: ViewportWindow, active_codes: Iterable[str]) -> DispatchResult:
        sequence = self._next_sequence()
        codes = sorted(set(active_codes))
        if not codes:
            return self._apply(DispatchResult.empty(sequence))

        window = quantized_window(viewport)
        layers: List[RasterLayerDescriptor] = []
        jobs = []
        for code in codes:
            adapter = self._index.get(code)
            if adapter is None:
                log.warning("No data source for category %r", code)
                continue
            if adapter.is_raster():
                layers.append(adapter.descriptor(code).with_visibility(True))
                continue
            for query in adapter.queries_for(code):
                jobs.append(self._run_query(adapter, window, query))

        settled = await asyncio.gather(*jobs)

        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        result = DispatchResult(sequence=sequence, layers=layers)
        seen = set()
        for query, outcome in settled:
            if outcome.warning:
                target = result.degraded_sources if outcome.degraded else result.failed_sources
                if outcome.warning not in target:
                    target.append(outcome.warning)
            for poi in normalize_all(outcome.records, query.category, now=stamp):
                if not viewport.contains(poi.lat, poi.lng):
                    continue
                if poi.id not in seen:
                    seen.add(poi.id)
                    result.pois.append(poi)
        for poi in self._custom.pois_for_categories(codes):
            if not viewport.contains(poi.lat, poi.lng):
                continue
            if poi.id not in seen:
                seen.add(poi.id)
                result.pois.append(poi)

        log.info("Cycle %d: %d POIs, %d layers, %d queries (%s)",
                 sequence, len(result.pois), len(layers), len(jobs),
                 result.summary or "all sources ok")
        return self._apply(result)
