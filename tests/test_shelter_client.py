import asyncio

import httpx
import pytest

from helpers import OSLO, Recorder, make_settings, shelter_gml
from trakke.errors import ParseError
from trakke.geo.bounds import ViewportWindow
from trakke.ingest.fetch_client import RateLimitedFetchClient
from trakke.ingest.shelter_client import ShelterAdapter, demo_shelters, parse_gml

_EXCEPTION = (
    '<?xml version="1.0"?>'
    '<ows:ExceptionReport xmlns:ows="http://www.opengis.net/ows/1.1" version="2.0.0">'
    '<ows:Exception exceptionCode="InvalidParameterValue">'
    "<ows:ExceptionText>Unknown typeName</ows:ExceptionText>"
    "</ows:Exception></ows:ExceptionReport>"
)


def _outcome(handler, clock, **settings):
    rec = Recorder(handler)
    cfg = make_settings(**settings)

    async def scenario():
        async with RateLimitedFetchClient(cfg, transport=rec.transport(),
                                          clock=clock, sleep=clock.sleep) as client:
            adapter = ShelterAdapter(client, cfg)
            return await adapter.fetch_query(OSLO, adapter.queries_for("emergency_shelters")[0])

    return asyncio.run(scenario()), rec


class TestParseGml:
    def test_full_feature(self):
        text = shelter_gml([{
            "pos": "10.7522 59.9139", "lokalId": "abc-1", "romnr": "12",
            "plasser": "450", "adresse": "Storgata 1",
        }])
        (rec,) = parse_gml(text)
        assert rec.local_id == "abc-1"
        assert (rec.lat, rec.lng) == (59.9139, 10.7522)
        assert rec.room_number == "12"
        assert rec.capacity == "450"
        assert rec.address == "Storgata 1"

    def test_lat_first_axis_order(self):
        (rec,) = parse_gml(shelter_gml([{"pos": "59.9139 10.7522", "lokalId": "x"}]))
        assert (rec.lat, rec.lng) == (59.9139, 10.7522)

    def test_optional_attributes_missing(self):
        (rec,) = parse_gml(shelter_gml([{"pos": "10.75 59.91"}]))
        assert rec.room_number is None
        assert rec.capacity is None
        assert rec.address is None
        assert rec.local_id == "feature-0"

    def test_feature_without_position_skipped(self):
        text = shelter_gml([{"pos": "", "lokalId": "a"}, {"pos": "10.75 59.91", "lokalId": "b"}])
        assert [r.local_id for r in parse_gml(text)] == ["b"]

    def test_zero_features(self):
        assert parse_gml(shelter_gml([])) == []

    def test_malformed_xml(self):
        with pytest.raises(ParseError):
            parse_gml("<wfs:FeatureCollection")

    def test_service_exception(self):
        with pytest.raises(ParseError, match="service exception"):
            parse_gml(_EXCEPTION)


def test_request_parameters(clock):
    outcome, rec = _outcome(lambda r: httpx.Response(200, text=shelter_gml([])), clock)
    params = rec.requests[0].url.params
    assert params["service"] == "WFS"
    assert params["version"] == "2.0.0"
    assert params["typeNames"] == "app:Tilfluktsrom"
    assert params["srsName"] == "EPSG:4326"
    *coords, crs = params["bbox"].split(",")
    assert [float(c) for c in coords] == pytest.approx([10.74, 59.90, 10.76, 59.92])
    assert crs == "EPSG:4326"
    assert params["count"] == "100"


def test_zero_features_is_empty_without_warning(clock):
    outcome, _ = _outcome(lambda r: httpx.Response(200, text=shelter_gml([])), clock)
    assert outcome.records == []
    assert outcome.warning is None
    assert outcome.cacheable


def test_service_exception_is_empty_with_warning(clock):
    outcome, _ = _outcome(lambda r: httpx.Response(200, text=_EXCEPTION), clock)
    assert outcome.records == []
    assert outcome.warning == ShelterAdapter.label


def test_rejected_origin_falls_back_to_demo_data(clock):
    outcome, _ = _outcome(lambda r: httpx.Response(403), clock)
    assert outcome.degraded
    assert outcome.warning == ShelterAdapter.label
    assert not outcome.cacheable
    assert outcome.records
    assert all(r.demo for r in outcome.records)
    assert all(OSLO.contains(r.lat, r.lng) for r in outcome.records)


def test_rejected_origin_without_fallback(clock):
    outcome, _ = _outcome(lambda r: httpx.Response(403), clock, shelter_demo_fallback=False)
    assert outcome.records == []
    assert not outcome.degraded
    assert outcome.warning == ShelterAdapter.label


def test_proxy_prefix(clock):
    _, rec = _outcome(lambda r: httpx.Response(200, text=shelter_gml([])), clock,
                      shelter_proxy="https://proxy.example.no/?url=")
    assert rec.requests[0].url.host == "proxy.example.no"


def test_demo_data_filtered_to_viewport():
    bergen = ViewportWindow(north=60.40, south=60.38, east=5.34, west=5.31, zoom=14)
    assert [r.local_id for r in demo_shelters(bergen)] == ["demo-bergen-1"]
