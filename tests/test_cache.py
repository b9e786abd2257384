from helpers import FakeClock, OSLO
from trakke.geo.bounds import ViewportWindow
from trakke.ingest.cache import ResultCache, cache_key


def test_hit_within_ttl():
    clock = FakeClock()
    cache = ResultCache(ttl_s=600, clock=clock)
    key = cache_key("overpass:cave", OSLO)
    cache.put(key, ["a"])
    clock.now += 599
    assert cache.get(key) == ["a"]
    assert cache.hits == 1


def test_expires_after_ttl():
    clock = FakeClock()
    cache = ResultCache(ttl_s=600, clock=clock)
    key = cache_key("overpass:cave", OSLO)
    cache.put(key, ["a"])
    clock.now += 601
    assert cache.get(key) is None
    assert len(cache) == 0


def test_empty_payload_is_a_hit():
    cache = ResultCache()
    key = cache_key("entur:bus", OSLO)
    cache.put(key, [])
    assert cache.get(key) == []


def test_key_includes_query_and_quantized_bbox():
    nudged = ViewportWindow(north=59.9199, south=59.9001, east=10.7599, west=10.7401, zoom=15)
    assert cache_key("overpass:cave", OSLO) == cache_key("overpass:cave", nudged)
    assert cache_key("overpass:cave", OSLO) != cache_key("overpass:fire_pit", OSLO)


def test_clear():
    cache = ResultCache()
    cache.put(cache_key("overpass:cave", OSLO), [1])
    cache.clear()
    assert len(cache) == 0
