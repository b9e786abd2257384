"""Shared fakes and payload builders for the test suite."""
from __future__ import annotations

import json
from typing import Callable, Dict, List, Optional

import httpx

from trakke.config import Settings
from trakke.geo.bounds import ViewportWindow

OSLO = ViewportWindow(north=59.92, south=59.90, east=10.76, west=10.74, zoom=14)


class FakeClock:
    """Monotonic clock whose sleep just moves time forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Recorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self._handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]


def make_settings(**overrides) -> Settings:
    return Settings().with_overrides(**overrides)


def overpass_json(elements: List[dict]) -> str:
    return json.dumps({"version": 0.6, "elements": elements})


def osm_node(osm_id: int, lat: float, lon: float, **tags) -> dict:
    return {"type": "node", "id": osm_id, "lat": lat, "lon": lon, "tags": tags}


def osm_way(osm_id: int, lat: float, lon: float, **tags) -> dict:
    return {"type": "way", "id": osm_id, "center": {"lat": lat, "lon": lon}, "tags": tags}


def shelter_gml(features: List[Dict[str, Optional[str]]]) -> str:
    """GetFeature response; each feature dict has pos plus optional attrs."""
    members = []
    for f in features:
        attrs = "".join(
            f"<app:{k}>{v}</app:{k}>" for k, v in f.items() if k != "pos" and v is not None
        )
        members.append(
            "<wfs:member><app:Tilfluktsrom>"
            f"{attrs}"
            "<app:posisjon><gml:Point><gml:pos>"
            f"{f['pos']}"
            "</gml:pos></gml:Point></app:posisjon>"
            "</app:Tilfluktsrom></wfs:member>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<wfs:FeatureCollection xmlns:wfs="http://www.opengis.net/wfs/2.0" '
        'xmlns:gml="http://www.opengis.net/gml/3.2" '
        'xmlns:app="https://skjema.geonorge.no/SOSI/produktspesifikasjon/TilfluktsromOffentlige/20220215" '
        f'numberMatched="{len(features)}" numberReturned="{len(features)}">'
        + "".join(members)
        + "</wfs:FeatureCollection>"
    )


def entur_json(stops: List[dict]) -> str:
    features = []
    for s in stops:
        features.append({
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [s["lng"], s["lat"]]},
            "properties": {
                "id": s.get("id"),
                "name": s.get("name"),
                "label": s.get("label"),
                "locality": s.get("locality"),
                "category": s.get("category", ["onstreetBus"]),
            },
        })
    return json.dumps({"type": "FeatureCollection", "features": features})
