"""
Overpass API client for community-mapped features (OpenStreetMap).

Every query is constrained twice: to the national boundary area and to
the viewport bbox clipped against the national box.  Results are capped
server-side at ``max_results`` per call.

Overpass returns nodes with ``lat``/``lon`` and ways/relations with a
``center`` object when asked for ``out center``.

Usage
-----
    adapter = OverpassAdapter(client, settings)
    records = await adapter.fetch_category(viewport, "war_memorials")
"""
from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import ParseError, SourceUnavailable
from ..geo.bounds import ViewportWindow, clip_to_national
from .base import FetchOutcome, SourceAdapter, SourceQuery
from .records import OsmElementRecord

log = logging.getLogger(__name__)

_AREA = 'area["ISO3166-1"="NO"][admin_level=2]->.no;'

# sub-query → list of (element selector, tag filter)
_STATEMENTS: Dict[str, List[Tuple[str, str]]] = {
    "war_memorial": [
        ("nw", '["historic"="memorial"]["memorial"="war_memorial"]'),
        ("nw", '["historic"="fort"]'),
        ("nw", '["military"="bunker"]["bunker_type"]'),
        ("nwr", '["historic"="battlefield"]'),
    ],
    "cave": [
        ("node", '["natural"="cave_entrance"]'),
    ],
    "observation_tower": [
        ("nw", '["man_made"="tower"]["tower:type"~"^(observation|watchtower)$"]'),
        ("nw", '["man_made"="tower"]["tourism"="viewpoint"]'),
    ],
    "hunting_stand": [
        ("node", '["amenity"="hunting_stand"]'),
    ],
    "waterfall": [
        ("nw", '["waterway"="waterfall"]'),
    ],
    "fire_pit": [
        ("nw", '["leisure"="firepit"]'),
    ],
    "shelter": [
        ("nw", '["amenity"="shelter"]["shelter_type"~"^(basic_hut|weather_shelter|rock_shelter|lavvu)$"]'),
        ("nw", '["amenity"="shelter"][!"shelter_type"]'),
    ],
}


def build_query(subquery: str, viewport: ViewportWindow,
                timeout_s: int = 25, limit: int = 100) -> str:
    """Overpass QL for one sub-query inside *viewport*."""
    bbox = f"({viewport.south:.6f},{viewport.west:.6f},{viewport.north:.6f},{viewport.east:.6f})"
    lines = [f"[out:json][timeout:{timeout_s}];", _AREA, "("]
    for selector, tag_filter in _STATEMENTS[subquery]:
        lines.append(f"  {selector}{tag_filter}(area.no){bbox};")
    lines.append(");")
    lines.append(f"out center body {limit};")
    return "\n".join(lines)


def _parse_element(elem: dict, subquery: str) -> Optional[OsmElementRecord]:
    if not isinstance(elem, dict):
        log.debug("Skipping non-object Overpass element: %r", elem)
        return None
    try:
        osm_type = elem["type"]
        osm_id = int(elem["id"])
    except (KeyError, TypeError, ValueError) as exc:
        log.debug("Skipping malformed Overpass element: %s", exc)
        return None
    if "lat" in elem and "lon" in elem:
        lat, lng = elem.get("lat"), elem.get("lon")
    else:
        center = elem.get("center")
        if not isinstance(center, dict):
            center = {}
        lat, lng = center.get("lat"), center.get("lon")
    tags = elem.get("tags")
    return OsmElementRecord(
        osm_type=osm_type,
        osm_id=osm_id,
        lat=lat,
        lng=lng,
        tags=dict(tags) if isinstance(tags, dict) else {},
        subquery=subquery,
    )


def parse_response(text: str, subquery: str, limit: int = 100) -> List[OsmElementRecord]:
    """Parse an Overpass JSON body.  Raises ParseError on malformed input."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ParseError("overpass", f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise ParseError("overpass", "response has no element list")

    remark = data.get("remark") or ""
    if "runtime error" in remark:
        raise SourceUnavailable("overpass", remark.strip()[:120])

    records: List[OsmElementRecord] = []
    for elem in data["elements"][:limit]:
        rec = _parse_element(elem, subquery)
        if rec is not None:
            records.append(rec)
    return records


class OverpassAdapter(SourceAdapter):
    source_id = "overpass"
    label = "OpenStreetMap (Overpass)"
    categories = {
        "war_memorials": ("war_memorial",),
        "caves": ("cave",),
        "viewpoints": ("observation_tower", "hunting_stand"),
        "waterfalls": ("waterfall",),
        "fire_pits": ("fire_pit",),
        "wilderness_shelter": ("shelter",),
    }

    async def _fetch(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        clipped = clip_to_national(viewport)
        if clipped is None:
            log.info("Overpass %s: viewport outside national bounds, skipped", query.key)
            return FetchOutcome()

        s = self._settings
        ql = build_query(query.key, clipped, int(s.query_timeout_s), s.max_results)
        resp = await self._client.fetch(
            "POST", s.overpass_url,
            data=ql,
            headers={
                "Content-Type": "text/plain; charset=utf-8",
                "Accept": "application/json",
            },
            source=self.source_id,
        )
        records = parse_response(resp.text, query.key, s.max_results)
        log.info("Overpass %s: %d elements", query.key, len(records))
        return FetchOutcome(records=records)
