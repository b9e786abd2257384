"""
Raster overlays served as WMS tiles.

No data is fetched to build a layer: the adapter hands back a descriptor
with a GetMap URL template and the map host pulls tiles itself.  The only
network call here is the optional GetCapabilities availability probe.
"""
from __future__ import annotations

import logging
from typing import Dict

from ..categories.catalog import style_for
from ..geo.bounds import ViewportWindow
from ..poi.model import RasterLayerDescriptor
from .base import FetchOutcome, SourceAdapter, SourceQuery

log = logging.getLogger(__name__)

_OPACITY = 0.8
_TILE_SIZE = 256


def wms_tile_template(base_url: str, layer: str, tile_size: int = _TILE_SIZE) -> str:
    return (
        f"{base_url}?service=WMS&version=1.3.0&request=GetMap"
        f"&format=image/png&transparent=true&layers={layer}"
        f"&crs=EPSG:3857&styles=&width={tile_size}&height={tile_size}"
        "&bbox={bbox-epsg-3857}"
    )


class RasterAdapter(SourceAdapter):
    """Base for WMS overlays.  Subclasses fill in ``layers``."""

    url_setting = ""
    # category code → (descriptor suffix, WMS layer name)
    layers: Dict[str, tuple] = {}

    def __init__(self, client, settings):
        super().__init__(client, settings)
        self._descriptors: Dict[str, RasterLayerDescriptor] = {}
        self.categories = {code: (suffix,) for code, (suffix, _) in self.layers.items()}

    def is_raster(self) -> bool:
        return True

    @property
    def base_url(self) -> str:
        return getattr(self._settings, self.url_setting)

    def descriptor(self, category: str) -> RasterLayerDescriptor:
        """Descriptor for *category*; the same object on every call."""
        if category not in self._descriptors:
            suffix, layer = self.layers[category]
            self._descriptors[category] = RasterLayerDescriptor(
                id=f"{self.source_id}-{suffix}",
                category=category,
                tile_url=wms_tile_template(self.base_url, layer),
                opacity=_OPACITY,
                visible=False,
                source_id=self.source_id,
                label=style_for(category).label,
                tile_size=_TILE_SIZE,
            )
        return self._descriptors[category]

    async def _fetch(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        return FetchOutcome()

    async def fetch_category(self, viewport: ViewportWindow, category: str) -> RasterLayerDescriptor:
        return self.descriptor(category)

    async def probe(self) -> bool:
        ok = await self._client.probe(
            self.base_url,
            params={"service": "WMS", "request": "GetCapabilities"},
            source=self.source_id,
        )
        log.info("%s WMS %s", self.source_id, "available" if ok else "unavailable")
        return ok


class ForestCoverAdapter(RasterAdapter):
    source_id = "naturskog"
    label = "Naturskog (Miljødirektoratet)"
    url_setting = "naturskog_url"
    layers = {
        "forest_pre_1940": ("forest_pre_1940", "skog_etablert_foer_1940_ikke_flatehogd"),
        "forest_probability": ("forest_probability", "naturskogssannsynlighet"),
        "forest_proximity": ("forest_proximity", "naturskogsnaerhet"),
    }


class TrailNetworkAdapter(RasterAdapter):
    source_id = "turrutebasen"
    label = "Turrutebasen (Kartverket)"
    url_setting = "trail_url"
    layers = {
        "trail_hiking": ("hiking", "fotrute"),
        "trail_skiing": ("skiing", "skiloype"),
        "trail_cycling": ("cycling", "sykkelrute"),
        "trail_all": ("all", "friluftsruter"),
    }
