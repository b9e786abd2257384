"""
Public transit stops from the Entur geocoder.

Bus stops are only requested from zoom 10, rail stations from zoom 8;
below that the adapter answers empty without touching the network.

Usage
-----
    adapter = TransitAdapter(client, settings)
    records = await adapter.fetch_category(viewport, "bus_stops")
"""
from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import ParseError
from ..geo.bounds import ViewportWindow, clip_to_national
from .base import FetchOutcome, SourceAdapter, SourceQuery
from .records import TransitStopRecord

log = logging.getLogger(__name__)

_PAGE_SIZE = 1000

# mode → (minimum zoom, geocoder stop categories)
_MODES: Dict[str, Tuple[float, Tuple[str, ...]]] = {
    "bus": (10, ("onstreetBus", "busStation")),
    "rail": (8, ("railStation",)),
}


def min_zoom(mode: str) -> float:
    return _MODES[mode][0]


def _parse_feature(feat: dict, mode: str) -> Optional[TransitStopRecord]:
    if not isinstance(feat, dict):
        log.debug("Skipping non-object Entur feature: %r", feat)
        return None
    props = feat.get("properties")
    if not isinstance(props, dict):
        props = {}
    try:
        coords = feat["geometry"]["coordinates"]
        lng, lat = coords[0], coords[1]
    except (KeyError, IndexError, TypeError) as exc:
        log.debug("Skipping malformed Entur feature: %s", exc)
        return None

    stop_categories = tuple(props.get("category") or ())
    wanted = _MODES[mode][1]
    if not any(c in wanted for c in stop_categories):
        return None

    return TransitStopRecord(
        stop_id=props.get("id"),
        lat=lat,
        lng=lng,
        label=props.get("label"),
        name=props.get("name"),
        locality=props.get("locality"),
        mode=mode,
        stop_categories=stop_categories,
    )


def parse_features(text: str, mode: str) -> List[TransitStopRecord]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ParseError("entur", f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("entur", "unexpected response shape")
    records = []
    for feat in data.get("features") or []:
        rec = _parse_feature(feat, mode)
        if rec is not None:
            records.append(rec)
    return records


class TransitAdapter(SourceAdapter):
    source_id = "entur"
    label = "Entur (kollektivtransport)"
    categories = {
        "bus_stops": ("bus",),
        "train_stations": ("rail",),
    }

    async def _fetch(self, viewport: ViewportWindow, query: SourceQuery) -> FetchOutcome:
        if viewport.zoom < min_zoom(query.key):
            log.debug("Entur %s: zoom %.1f below %.0f, skipped",
                      query.key, viewport.zoom, min_zoom(query.key))
            return FetchOutcome.skipped()
        clipped = clip_to_national(viewport)
        if clipped is None:
            return FetchOutcome()

        params = {
            "layers": "venue",
            "size": str(_PAGE_SIZE),
            "boundary.rect.min_lat": f"{clipped.south:.6f}",
            "boundary.rect.min_lon": f"{clipped.west:.6f}",
            "boundary.rect.max_lat": f"{clipped.north:.6f}",
            "boundary.rect.max_lon": f"{clipped.east:.6f}",
        }
        resp = await self._client.fetch(
            "GET", self._settings.entur_url,
            params=params,
            headers={"ET-Client-Name": self._settings.user_agent,
                     "Accept": "application/json"},
            source=self.source_id,
        )
        records = parse_features(resp.text, query.key)
        log.info("Entur %s: %d stops", query.key, len(records))
        return FetchOutcome(records=records)
