"""
Public civil-defence shelter registry (Geonorge WFS, GML 3.2).

GetFeature is filtered by the viewport bbox and capped at ``count``.
Optional attributes (room number, capacity, address) are often missing.

The WFS does not serve browser origins it does not know; when it answers
401/403 the adapter falls back to a small built-in demonstration set and
reports degraded mode through the warning channel instead of going
silent.

Usage
-----
    adapter = ShelterAdapter(client, settings)
    records = await adapter.fetch_category(viewport, "emergency_shelters")
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

from ..errors import ParseError, SourceUnavailable
from ..geo.bounds import NATIONAL_NORTH, NATIONAL_SOUTH, ViewportWindow, clip_to_national
from .base import FetchOutcome, SourceAdapter, SourceQuery
from .records import ShelterRecord

log = logging.getLogger(__name__)

_TYPE_NAME = "app:Tilfluktsrom"
_OUTPUT_FORMAT = "application/gml+xml; version=3.2"
_REJECTED_ORIGIN = (401, 403)

# ── Demonstration data ────────────────────────────────────────────────
# Shown only when the registry refuses our origin.  Positions and sizes
# are representative, not authoritative.

DEMO_SHELTERS: List[ShelterRecord] = [
    ShelterRecord("demo-oslo-1", 59.9133, 10.7389, "101", "700", "Youngstorget 1, Oslo", demo=True),
    ShelterRecord("demo-oslo-2", 59.9226, 10.7537, "102", "450", "Carl Berners plass, Oslo", demo=True),
    ShelterRecord("demo-oslo-3", 59.9111, 10.7528, "103", "1000", "Grønland, Oslo", demo=True),
    ShelterRecord("demo-bergen-1", 60.3929, 5.3242, "201", "600", "Bryggen, Bergen", demo=True),
    ShelterRecord("demo-trondheim-1", 63.4305, 10.3951, "301", "500", "Torvet, Trondheim", demo=True),
    ShelterRecord("demo-tromso-1", 69.6492, 18.9553, "401", "3500", "Fjellet, Tromsø", demo=True),
    ShelterRecord("demo-stavanger-1", 58.9690, 5.7331, "501", "400", "Torget, Stavanger", demo=True),
]


def demo_shelters(viewport: ViewportWindow) -> List[ShelterRecord]:
    return [r for r in DEMO_SHELTERS if viewport.contains(r.lat, r.lng)]


# ── GML parsing ───────────────────────────────────────────────────────

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _text(feature: ET.Element, name: str) -> Optional[str]:
    elem = feature.find(f".//{{*}}{name}")
    if elem is None or elem.text is None:
        return None
    value = elem.text.strip()
    return value or None


def _lat_lng(pos: str) -> Optional[Tuple[float, float]]:
    """Order a two-number ``gml:pos`` as (lat, lng).

    The registry emits "lng lat" but EPSG:4326 axis order says "lat lng";
    inside the national box the two ranges do not overlap, so the
    latitude is whichever value falls in the latitude band.
    """
    parts = pos.split()
    if len(parts) < 2:
        return None
    try:
        a, b = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if NATIONAL_SOUTH <= a <= NATIONAL_NORTH and not NATIONAL_SOUTH <= b <= NATIONAL_NORTH:
        return a, b
    return b, a


def parse_gml(text: str) -> List[ShelterRecord]:
    """Parse a GetFeature response.  Raises ParseError on bad documents."""
    try:
        root = ET.fromstring(text.encode("utf-8") if isinstance(text, str) else text)
    except ET.ParseError as exc:
        raise ParseError("shelters", f"malformed XML: {exc}") from exc

    if _local(root.tag) in ("ExceptionReport", "ServiceExceptionReport") or \
            root.find(".//{*}ServiceException") is not None or \
            root.find(".//{*}Exception") is not None:
        detail = " ".join(t.strip() for t in root.itertext() if t.strip())
        raise ParseError("shelters", f"service exception: {detail[:120]}")

    records: List[ShelterRecord] = []
    for i, feature in enumerate(root.findall(".//{*}Tilfluktsrom")):
        pos = _text(feature, "pos")
        coord = _lat_lng(pos) if pos else None
        if coord is None:
            log.debug("Shelter feature %d has no usable position", i)
            continue
        records.append(ShelterRecord(
            local_id=_text(feature, "lokalId") or f"feature-{i}",
            lat=coord[0],
            lng=coord[1],
            room_number=_text(feature, "romnr"),
            capacity=_text(feature, "plasser"),
            address=_text(feature, "adresse"),
        ))
    return records


class ShelterAdapter(SourceAdapter):
    source_id = "shelters"
    label = "Tilfluktsromregisteret (DSB)"
    categories = {"emergency_shelters": ("public_shelters",)}

    def _url(self) -> str:
        s = self._settings
        return f"{s.shelter_proxy}{s.shelter_url}" if s.shelter_proxy else s.shelter_url

    async def _fetch(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        clipped = clip_to_national(viewport)
        if clipped is None:
            return FetchOutcome()

        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeNames": _TYPE_NAME,
            "outputFormat": _OUTPUT_FORMAT,
            "srsName": "EPSG:4326",
            "bbox": f"{clipped.west},{clipped.south},{clipped.east},{clipped.north},EPSG:4326",
            "count": str(self._settings.max_results),
        }
        try:
            resp = await self._client.fetch("GET", self._url(), params=params,
                                            source=self.source_id)
        except SourceUnavailable as exc:
            if exc.status in _REJECTED_ORIGIN and self._settings.shelter_demo_fallback:
                demo = demo_shelters(clipped)
                log.warning("Shelter registry refused request (HTTP %d); "
                            "showing %d demo shelters", exc.status, len(demo))
                return FetchOutcome(records=demo, warning=self.label,
                                    degraded=True, cacheable=False)
            raise

        records = parse_gml(resp.text)
        log.info("Shelter registry: %d shelters", len(records))
        return FetchOutcome(records=records)
