import asyncio
from dataclasses import replace

import httpx
import pytest

from helpers import OSLO, Recorder, entur_json, make_settings
from trakke.ingest.fetch_client import RateLimitedFetchClient
from trakke.ingest.transit_client import TransitAdapter, parse_features

_STOPS = [
    {"id": "NSR:StopPlace:1", "lat": 59.911, "lng": 10.750, "label": "Jernbanetorget, Oslo",
     "name": "Jernbanetorget", "locality": "Oslo", "category": ["onstreetBus"]},
    {"id": "NSR:StopPlace:2", "lat": 59.910, "lng": 10.752, "label": "Oslo S",
     "name": "Oslo S", "locality": "Oslo", "category": ["railStation"]},
    {"id": "NSR:StopPlace:3", "lat": 59.912, "lng": 10.748, "name": "Tollbugata",
     "category": ["tramStation"]},
]


def _fetch(viewport, category, clock):
    rec = Recorder(lambda r: httpx.Response(200, text=entur_json(_STOPS)))
    cfg = make_settings()

    async def scenario():
        async with RateLimitedFetchClient(cfg, transport=rec.transport(),
                                          clock=clock, sleep=clock.sleep) as client:
            return await TransitAdapter(client, cfg).fetch_category(viewport, category)

    return asyncio.run(scenario()), rec


@pytest.mark.parametrize("zoom,expected_calls", [(8, 0), (9.9, 0), (10, 1), (14, 1)])
def test_bus_stops_zoom_gate(clock, zoom, expected_calls):
    records, rec = _fetch(replace(OSLO, zoom=zoom), "bus_stops", clock)
    assert len(rec.requests) == expected_calls
    assert bool(records) == bool(expected_calls)


@pytest.mark.parametrize("zoom,expected_calls", [(7, 0), (8, 1)])
def test_rail_zoom_gate(clock, zoom, expected_calls):
    _, rec = _fetch(replace(OSLO, zoom=zoom), "train_stations", clock)
    assert len(rec.requests) == expected_calls


def test_filters_by_stop_category(clock):
    bus, _ = _fetch(OSLO, "bus_stops", clock)
    rail, _ = _fetch(OSLO, "train_stations", clock)
    assert [r.stop_id for r in bus] == ["NSR:StopPlace:1"]
    assert [r.stop_id for r in rail] == ["NSR:StopPlace:2"]
    assert rail[0].mode == "rail"


def test_request_shape(clock):
    _, rec = _fetch(OSLO, "bus_stops", clock)
    req = rec.requests[0]
    assert req.headers["ET-Client-Name"] == make_settings().user_agent
    assert req.url.params["layers"] == "venue"
    assert float(req.url.params["boundary.rect.min_lat"]) == pytest.approx(59.90)
    assert float(req.url.params["boundary.rect.max_lon"]) == pytest.approx(10.76)


def test_below_gate_outcome_not_cacheable(clock):
    async def scenario():
        cfg = make_settings()
        async with RateLimitedFetchClient(cfg) as client:
            adapter = TransitAdapter(client, cfg)
            return await adapter.fetch_query(replace(OSLO, zoom=8),
                                             adapter.queries_for("bus_stops")[0])

    outcome = asyncio.run(scenario())
    assert outcome.records == []
    assert outcome.warning is None
    assert outcome.cacheable is False


def test_parse_skips_malformed_features():
    text = '{"features": [{"properties": {"category": ["onstreetBus"]}}]}'
    assert parse_features(text, "bus") == []


def test_parse_skips_non_object_features():
    text = ('{"features": ["x", {"type": "Feature", "properties": [1]},'
            ' {"geometry": {"coordinates": [10.75, 59.91]}, "properties": "nope"}]}')
    assert parse_features(text, "bus") == []
