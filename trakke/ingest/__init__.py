"""Source adapters for the public geodata services, plus the shared client."""
from __future__ import annotations

import logging
from typing import Dict, List

from ..config import Settings
from .base import FetchOutcome, SourceAdapter, SourceQuery
from .fetch_client import RateLimitedFetchClient
from .overpass_client import OverpassAdapter
from .raster_layers import ForestCoverAdapter, RasterAdapter, TrailNetworkAdapter
from .shelter_client import ShelterAdapter
from .transit_client import TransitAdapter

log = logging.getLogger(__name__)

_ADAPTER_TYPES = (
    OverpassAdapter,
    ShelterAdapter,
    TransitAdapter,
    ForestCoverAdapter,
    TrailNetworkAdapter,
)


def build_adapters(client: RateLimitedFetchClient, settings: Settings) -> List[SourceAdapter]:
    return [cls(client, settings) for cls in _ADAPTER_TYPES]


def index_by_category(adapters: List[SourceAdapter]) -> Dict[str, SourceAdapter]:
    """Category code → the adapter serving it.  First registration wins."""
    index: Dict[str, SourceAdapter] = {}
    for adapter in adapters:
        for code in adapter.categories:
            if code in index:
                log.warning("Category %s served by both %s and %s; keeping %s",
                            code, index[code].source_id, adapter.source_id,
                            index[code].source_id)
                continue
            index[code] = adapter
    return index
