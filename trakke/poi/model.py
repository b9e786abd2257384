"""
Unified point-of-interest schema and raster layer descriptors.

Every upstream record ends up as a ``POI``; nothing source-specific
survives past the normalizer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class POI:
    """One named, located feature on the map."""
    id: str                  # source-prefixed, e.g. "osm:node:123"
    name: str
    description: str
    category: str            # category code, e.g. "war_memorials"
    lat: float
    lng: float
    color: str               # marker fill, "#rrggbb"
    source: str              # provenance, e.g. "overpass"
    last_updated: str        # ISO-8601 UTC
    enrichment: Optional[Dict[str, Any]] = None

    @property
    def coordinate(self):
        return self.lat, self.lng

    def as_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "lat": self.lat,
            "lng": self.lng,
            "color": self.color,
            "source": self.source,
            "last_updated": self.last_updated,
        }
        if self.enrichment:
            d["enrichment"] = dict(self.enrichment)
        return d


@dataclass(frozen=True)
class RasterLayerDescriptor:
    """Server-rendered tile overlay toggled as a single unit."""
    id: str                  # "<source>-<layer type>", e.g. "naturskog-forest_pre_1940"
    category: str
    tile_url: str            # WMS GetMap template with {bbox-epsg-3857}
    opacity: float = 0.8
    visible: bool = False
    source_id: str = ""
    label: str = ""
    tile_size: int = 256

    def url_for_bbox(self, minx: float, miny: float, maxx: float, maxy: float,
                     width: Optional[int] = None, height: Optional[int] = None) -> str:
        """Concrete GetMap URL for an EPSG:3857 bbox."""
        url = self.tile_url.replace(
            "{bbox-epsg-3857}", f"{minx:.3f},{miny:.3f},{maxx:.3f},{maxy:.3f}"
        )
        if width is not None and height is not None:
            url = (url.replace(f"width={self.tile_size}", f"width={int(width)}")
                      .replace(f"height={self.tile_size}", f"height={int(height)}"))
        return url

    def with_visibility(self, visible: bool) -> "RasterLayerDescriptor":
        return RasterLayerDescriptor(
            id=self.id, category=self.category, tile_url=self.tile_url,
            opacity=self.opacity, visible=visible, source_id=self.source_id,
            label=self.label, tile_size=self.tile_size,
        )
