"""
Adapter contract shared by every data source.

A category can fan out into several ``SourceQuery`` calls (the viewpoint
category also asks for hunting stands).  The dispatcher caches and runs
adapters at query granularity; ``fetch_category`` is the per-category
convenience on top.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from ..config import Settings
from ..errors import ParseError, SourceError
from ..geo.bounds import ViewportWindow
from ..poi.model import RasterLayerDescriptor
from .fetch_client import RateLimitedFetchClient
from .records import RawRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceQuery:
    source_id: str
    category: str
    key: str                 # sub-query name within the source

    @property
    def cache_name(self) -> str:
        return f"{self.source_id}:{self.key}"


@dataclass
class FetchOutcome:
    """Result of one adapter call, failures included."""
    records: List[RawRecord] = field(default_factory=list)
    warning: Optional[str] = None   # source label when something went wrong
    degraded: bool = False          # served from fallback data
    cacheable: bool = True

    @classmethod
    def failed(cls, source_label: str) -> "FetchOutcome":
        return cls(records=[], warning=source_label, cacheable=False)

    @classmethod
    def skipped(cls) -> "FetchOutcome":
        return cls(records=[], cacheable=False)


class SourceAdapter:
    """Base class: subclasses set the class attributes and implement ``_fetch``."""

    source_id = ""
    label = ""                                   # for user-facing warnings
    categories: Dict[str, Tuple[str, ...]] = {}  # category code → sub-query keys

    def __init__(self, client: Optional[RateLimitedFetchClient], settings: Settings):
        self._client = client
        self._settings = settings

    def handles(self, category: str) -> bool:
        return category in self.categories

    def queries_for(self, category: str) -> List[SourceQuery]:
        return [SourceQuery(self.source_id, category, key)
                for key in self.categories.get(category, ())]

    def is_raster(self) -> bool:
        return False

    async def fetch_query(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        """Run one query; upstream failures come back as empty + warning."""
        try:
            return await self._fetch(viewport, query)
        except SourceError as exc:
            log.warning("%s query %r failed: %s", self.source_id, query.key, exc)
            return FetchOutcome.failed(self.label)
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            err = ParseError(self.source_id, f"unexpected response shape: {exc!r}")
            log.warning("%s query %r failed: %s", self.source_id, query.key, err)
            return FetchOutcome.failed(self.label)

    async def _fetch(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        raise NotImplementedError

    async def fetch_category(
        self, viewport: ViewportWindow, category: str,
    ) -> Union[List[RawRecord], RasterLayerDescriptor]:
        outcomes = await asyncio.gather(
            *(self.fetch_query(viewport, q) for q in self.queries_for(category))
        )
        return [rec for outcome in outcomes for rec in outcome.records]
