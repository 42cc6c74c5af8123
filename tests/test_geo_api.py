"""Tests for the geo and places clients."""

from types import SimpleNamespace

import httpx
from geopy.exc import GeocoderServiceError, GeocoderTimedOut

from property_finder.models.search import BoundingBox, Coordinates
from property_finder.services.geo_api import GeoClient
from property_finder.services.places import PlacesClient
from property_finder.services.rate_limiter import RateLimiter

ZURICH = Coordinates(lat=47.3769, lng=8.5417)


class FakeGeocoder:
    """Stands in for geopy's Nominatim."""

    def __init__(self, results=None, address=None, error=None):
        self.results = results or {}
        self.address = address
        self.error = error
        self.calls = []

    def geocode(self, query, timeout=None, country_codes=None):
        self.calls.append(("geocode", query, country_codes))
        if self.error:
            raise self.error
        return self.results.get(query)

    def reverse(self, point, timeout=None, exactly_one=True):
        self.calls.append(("reverse", point))
        if self.address is None:
            return None
        return SimpleNamespace(raw={"address": self.address})


def make_geo(cache, geocoder=None, handler=None) -> GeoClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404))))
    return GeoClient(
        cache,
        http=http,
        api_key="test-key",
        geocoder=geocoder or FakeGeocoder(),
        rate_limiter=RateLimiter(1000),
        geocode_rate_limiter=RateLimiter(1000),
    )


# === Geocoding ===


async def test_geocode_is_restricted_to_switzerland_and_cached(cache):
    geocoder = FakeGeocoder(results={"Zürich HB": SimpleNamespace(latitude=47.378, longitude=8.540)})
    geo = make_geo(cache, geocoder)

    first = await geo.geocode("Zürich HB")
    second = await geo.geocode("Zürich HB")

    assert first == second == Coordinates(lat=47.378, lng=8.540)
    assert geocoder.calls == [("geocode", "Zürich HB", "ch")]


async def test_geocode_failures_return_none_and_are_retried(cache):
    geocoder = FakeGeocoder(error=GeocoderTimedOut("slow"))
    geo = make_geo(cache, geocoder)

    assert await geo.geocode("Zürich") is None
    geocoder.error = GeocoderServiceError("down")
    assert await geo.geocode("Zürich") is None
    assert len(geocoder.calls) == 2


async def test_geocode_empty_text(cache):
    geocoder = FakeGeocoder()
    assert await make_geo(cache, geocoder).geocode("") is None
    assert geocoder.calls == []


async def test_reverse_city_prefers_city_then_town(cache):
    geo = make_geo(cache, FakeGeocoder(address={"town": "Uster", "village": "Nänikon"}))
    assert await geo.reverse_city(ZURICH) == "Uster"

    nothing = make_geo(cache, FakeGeocoder(address={"road": "Bahnhofstrasse"}))
    assert await nothing.reverse_city(Coordinates(lat=46.0, lng=7.0)) is None


# === Geoapify ===


async def test_isochrone_takes_outer_ring(cache):
    requests = []
    ring = [[8.5, 47.3], [8.6, 47.3], [8.6, 47.4], [8.5, 47.3]]
    hole = [[8.55, 47.35], [8.56, 47.35], [8.56, 47.36], [8.55, 47.35]]

    def handler(request):
        requests.append(request)
        geometry = {"type": "MultiPolygon", "coordinates": [[ring, hole], [hole]]}
        return httpx.Response(200, json={"features": [{"geometry": geometry}]})

    geo = make_geo(cache, handler=handler)

    isochrone = await geo.isochrone(ZURICH, "public", 20)

    assert isochrone.mode == "public"
    assert isochrone.polygon == ring
    params = requests[0].url.params
    assert params["mode"] == "approximated_transit"
    assert params["range"] == "1200"
    assert params["apiKey"] == "test-key"


async def test_isochrone_failure_returns_none(cache):
    geo = make_geo(cache, handler=lambda r: httpx.Response(500))
    assert await geo.isochrone(ZURICH, "bike", 15) is None


async def test_route_time_rounds_to_minutes(cache):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"features": [{"properties": {"time": 754}}]})

    geo = make_geo(cache, handler=handler)

    assert await geo.route_time(Coordinates(lat=47.4, lng=8.5), ZURICH, "bike") == 13
    assert await geo.route_time(Coordinates(lat=47.4, lng=8.5), ZURICH, "bike") == 13
    assert requests[0].url.params["mode"] == "bicycle"
    assert len(requests) == 1


async def test_route_time_network_error(cache):
    def handler(request):
        raise httpx.ConnectError("unreachable")

    geo = make_geo(cache, handler=handler)
    assert await geo.route_time(ZURICH, ZURICH, "car") is None


# === Overpass ===


def overpass_client(cache, responses, geo=None):
    calls = []

    def handler(request):
        calls.append(request.url.host)
        return responses[request.url.host]

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = PlacesClient(
        cache, geo=geo, http=http, endpoints=["https://first.test/api", "https://second.test/api"]
    )
    return client, calls


ELEMENTS = {
    "elements": [
        {"tags": {"name": "Uster"}, "bounds": {"minlat": 47.3, "minlon": 8.7, "maxlat": 47.4, "maxlon": 8.8}},
        {"tags": {"name": "Uster"}, "bounds": {"minlat": 0, "minlon": 0, "maxlat": 1, "maxlon": 1}},
        {"tags": {"name": "No Bounds"}},
        {"tags": {}, "bounds": {"minlat": 0, "minlon": 0, "maxlat": 1, "maxlon": 1}},
    ]
}


async def test_overpass_falls_back_on_server_error(cache):
    client, calls = overpass_client(
        cache,
        {"first.test": httpx.Response(504), "second.test": httpx.Response(200, json=ELEMENTS)},
    )
    bbox = BoundingBox(min_lng=8.6, max_lng=8.9, min_lat=47.2, max_lat=47.5)

    places = await client.places_in_bbox(bbox)

    assert [p.name for p in places] == ["Uster"]
    assert places[0].bbox.min_lng == 8.7
    assert calls == ["first.test", "second.test"]


async def test_overpass_client_error_stops(cache):
    client, calls = overpass_client(
        cache,
        {"first.test": httpx.Response(400), "second.test": httpx.Response(200, json=ELEMENTS)},
    )

    assert await client.execute("[out:json];") is None
    assert calls == ["first.test"]


async def test_nearby_places_lead_with_reverse_geocoded_city(cache):
    elements = {"elements": [{"tags": {"name": n}} for n in ["Adliswil", "Zürich", "Kilchberg"]]}
    geo = make_geo(cache, FakeGeocoder(address={"city": "Zürich"}))
    client, _ = overpass_client(
        cache,
        {"first.test": httpx.Response(200, json=elements), "second.test": httpx.Response(500)},
        geo=geo,
    )

    assert await client.nearby_places(ZURICH) == ["Zürich", "Adliswil", "Kilchberg"]


async def test_nearby_places_are_capped(cache):
    elements = {"elements": [{"tags": {"name": f"Place {i}"}} for i in range(15)]}
    client, _ = overpass_client(
        cache, {"first.test": httpx.Response(200, json=elements), "second.test": httpx.Response(500)}
    )

    assert len(await client.nearby_places(ZURICH)) == 10
