"""Tests for the TTL route cache."""

from conftest import FakeClock
from terrain_router.cache import RouteCache


def test_get_returns_stored_payload():
    cache = RouteCache(clock=FakeClock())
    cache.put("road:a|b|", {"distanceKm": 1.0})
    assert cache.get("road:a|b|") == {"distanceKm": 1.0}


def test_miss_is_none():
    assert RouteCache().get("terrain:x|y|") is None


def test_entry_expires_after_ttl(fake_clock):
    cache = RouteCache(ttl_seconds=900, clock=fake_clock)
    cache.put("k", "v")

    fake_clock.advance(899)
    assert cache.get("k") == "v"

    fake_clock.advance(1)
    assert cache.get("k") is None
    # Expired entries are dropped on read
    assert len(cache) == 0


def test_put_refreshes_timestamp(fake_clock):
    cache = RouteCache(ttl_seconds=60, clock=fake_clock)
    cache.put("k", "old")
    fake_clock.advance(50)
    cache.put("k", "new")
    fake_clock.advance(50)
    assert cache.get("k") == "new"


def test_make_key_separates_route_types_and_via():
    a, b, via = (18.5, 69.0), (18.6, 69.0), (18.55, 69.02)
    terrain = RouteCache.make_key("terrain", [a, b])
    road = RouteCache.make_key("road", [a, b])
    with_via = RouteCache.make_key("terrain", [a, via, b])

    assert terrain == "terrain:18.5,69.0|18.6,69.0|"
    assert with_via == "terrain:18.5,69.0|18.6,69.0|18.55,69.02"
    assert len({terrain, road, with_via}) == 3


def test_make_key_is_independent_of_number_formatting():
    # Parsed from "18.5,69" and "18.50,69.000"
    assert RouteCache.make_key("road", [(18.5, 69.0), (18.6, 69.0)]) == RouteCache.make_key(
        "road", [(float("18.50"), float("69.000")), (float("18.6"), float("69"))]
    )


def test_make_key_keeps_via_order():
    a, b = (10.0, 60.0), (11.0, 61.0)
    v1, v2 = (10.2, 60.2), (10.5, 60.5)
    assert RouteCache.make_key("terrain", [a, v1, v2, b]) != RouteCache.make_key("terrain", [a, v2, v1, b])


def test_clear():
    cache = RouteCache()
    cache.put("a", 1)
    cache.put("b", 2)
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0
    assert cache.get("a") is None
