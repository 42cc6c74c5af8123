"""Shared fixtures and fakes for the test suite."""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from property_finder.models.listing import Listing, SourceRef
from property_finder.models.search import Coordinates, Isochrone, Place
from property_finder.search.area import SearchAreaResolver
from property_finder.search.orchestrator import SearchOrchestrator
from property_finder.services.travel_times import TravelTimeEnricher
from property_finder.storage.cache import MemoryCache


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_listing(
    id: str = "comparis-1",
    source: str = "Comparis",
    price: int = 1500,
    rooms: float = 2,
    lat: float = 47.3769,
    lng: float = 8.5417,
    **fields,
) -> Listing:
    return Listing(
        id=id,
        providers=[SourceRef(name=source, url=f"https://example.com/{id}")],
        title=fields.pop("title", f"Listing {id}"),
        price=price,
        rooms=rooms,
        lat=lat,
        lng=lng,
        **fields,
    )


class FakeGeo:
    """Stands in for GeoClient and records every call."""

    def __init__(
        self,
        coords: Optional[Coordinates] = None,
        isochrones: Optional[dict[str, Isochrone]] = None,
        route_minutes: Optional[dict[str, Optional[int]]] = None,
    ):
        self.coords = coords
        self.isochrones = isochrones or {}
        self.route_minutes = route_minutes or {}
        self.geocode_calls: list[str] = []
        self.isochrone_calls: list[tuple[str, int]] = []
        self.route_calls: list[tuple[Coordinates, str]] = []

    async def geocode(self, text: str) -> Optional[Coordinates]:
        self.geocode_calls.append(text)
        return self.coords

    async def isochrone(self, coords, mode, minutes):
        self.isochrone_calls.append((mode, minutes))
        return self.isochrones.get(mode)

    async def route_time(self, origin, destination, mode):
        self.route_calls.append((origin, mode))
        return self.route_minutes.get(mode)

    async def reverse_city(self, coords):
        return None


class FakePlaces:
    def __init__(self, in_bbox: Optional[list[Place]] = None, nearby: Optional[list[str]] = None):
        self.in_bbox = in_bbox or []
        self.nearby = nearby or []
        self.bbox_calls = []
        self.nearby_calls = []

    async def places_in_bbox(self, bbox):
        self.bbox_calls.append(bbox)
        return self.in_bbox

    async def nearby_places(self, coords, radius_km=15):
        self.nearby_calls.append(coords)
        return self.nearby


class FakeTransit:
    def __init__(self, minutes: Optional[int] = 25):
        self.minutes = minutes
        self.calls = 0

    async def public_transport_time(self, origin, destination):
        self.calls += 1
        return self.minutes


class StaticSource:
    """Yields fixed batches and records the context it was called with."""

    def __init__(self, name, *batches, delay: float = 0):
        self.name = name
        self.batches = batches
        self.delay = delay
        self.contexts = []
        self.budgets = []

    async def fetch_listings(self, context, budget):
        self.contexts.append(context)
        self.budgets.append(budget)
        for batch in self.batches:
            await asyncio.sleep(self.delay)
            yield list(batch)


def make_orchestrator(cache, sources, geo=None, places=None, transit=None, chunk_size=10):
    geo = geo or FakeGeo()
    return SearchOrchestrator(
        resolver=SearchAreaResolver(geo, places or FakePlaces()),
        enricher=TravelTimeEnricher(cache, geo, transit or FakeTransit()),
        sources=sources,
        chunk_size=chunk_size,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def zurich() -> Coordinates:
    return Coordinates(lat=47.3769, lng=8.5417)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
