"""Geocoding, isochrones and routing against Nominatim and Geoapify."""

import asyncio
from typing import Any, Optional

import httpx
from geopy.exc import GeocoderTimedOut, GeopyError
from geopy.geocoders import Nominatim
from rich.console import Console

from property_finder.config.settings import (
    GEOAPIFY_API_KEY,
    GEOAPIFY_BASE_URL,
    GEOAPIFY_REQUESTS_PER_SECOND,
    GEOCODE_COUNTRY_CODE,
    GEOCODE_TIMEOUT,
    LONG_CACHE_TTL_MS,
    NOMINATIM_REQUESTS_PER_SECOND,
    NOMINATIM_USER_AGENT,
    TIMEOUT,
)
from property_finder.models.listing import TravelMode
from property_finder.models.search import Coordinates, Isochrone
from property_finder.services.rate_limiter import RateLimiter
from property_finder.storage.cache import CacheStore

console = Console()

# Geoapify routing profiles per travel mode
GEOAPIFY_PROFILES: dict[str, str] = {
    "car": "drive",
    "bike": "bicycle",
    "walk": "walk",
    "public": "approximated_transit",
}


class GeoClient:
    """Geo lookups used to resolve a search area and compute commute times.

    Every lookup is cached with the long TTL and degrades to None on any
    failure. Geoapify calls share one rate limiter per client, as do
    Nominatim calls.
    """

    def __init__(
        self,
        cache: CacheStore,
        http: Optional[httpx.AsyncClient] = None,
        api_key: str = GEOAPIFY_API_KEY,
        geocoder: Any = None,
        rate_limiter: Optional[RateLimiter] = None,
        geocode_rate_limiter: Optional[RateLimiter] = None,
    ):
        self.cache = cache
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=TIMEOUT, follow_redirects=True)
        self.api_key = api_key
        self.geocoder = geocoder or Nominatim(user_agent=NOMINATIM_USER_AGENT)
        self.rate_limiter = rate_limiter or RateLimiter(GEOAPIFY_REQUESTS_PER_SECOND)
        self.geocode_rate_limiter = geocode_rate_limiter or RateLimiter(
            NOMINATIM_REQUESTS_PER_SECOND
        )

    async def _run_geocoder(self, method, *args, **kwargs):
        """Run a blocking geopy call in a worker thread with a bounded wait."""
        return await asyncio.wait_for(
            asyncio.to_thread(method, *args, timeout=GEOCODE_TIMEOUT, **kwargs),
            timeout=GEOCODE_TIMEOUT + 1,
        )

    async def geocode(self, text: str) -> Optional[Coordinates]:
        """Geocode free text to coordinates, restricted to Switzerland."""
        if not text:
            return None

        async def fetch() -> Optional[dict]:
            try:
                location = await self.geocode_rate_limiter.schedule(
                    lambda: self._run_geocoder(
                        self.geocoder.geocode, text, country_codes=GEOCODE_COUNTRY_CODE
                    )
                )
            except (GeocoderTimedOut, asyncio.TimeoutError):
                console.print(f"[yellow]Geocoding timed out for: {text}[/]")
                return None
            except GeopyError as e:
                console.print(f"[yellow]Geocoding failed for {text}: {e}[/]")
                return None
            if location is None:
                return None
            return {"lat": location.latitude, "lng": location.longitude}

        data = await self.cache.get_or_set(f"geocode:{text}", fetch, LONG_CACHE_TTL_MS)
        return Coordinates(**data) if data else None

    async def reverse_city(self, coords: Coordinates) -> Optional[str]:
        """Name of the city, town or village at the given point."""

        async def fetch() -> Optional[str]:
            try:
                location = await self.geocode_rate_limiter.schedule(
                    lambda: self._run_geocoder(
                        self.geocoder.reverse, (coords.lat, coords.lng), exactly_one=True
                    )
                )
            except (GeocoderTimedOut, asyncio.TimeoutError):
                console.print(f"[yellow]Reverse geocoding timed out for {coords.lat},{coords.lng}[/]")
                return None
            except GeopyError as e:
                console.print(f"[yellow]Reverse geocoding failed: {e}[/]")
                return None
            if location is None:
                return None
            address = location.raw.get("address", {})
            return address.get("city") or address.get("town") or address.get("village")

        return await self.cache.get_or_set(
            f"reverse-city:{coords.lat},{coords.lng}", fetch, LONG_CACHE_TTL_MS
        )

    async def _geoapify_get(self, path: str, params: dict) -> Optional[dict]:
        url = f"{GEOAPIFY_BASE_URL}/{path}"
        params = {**params, "apiKey": self.api_key}
        try:
            resp = await self.rate_limiter.schedule(lambda: self.http.get(url, params=params))
        except httpx.HTTPError as e:
            console.print(f"[yellow]Geoapify {path} request failed: {e}[/]")
            return None
        if resp.status_code != 200:
            console.print(f"[yellow]Geoapify {path} error: HTTP {resp.status_code}[/]")
            return None
        try:
            return resp.json()
        except ValueError as e:
            console.print(f"[yellow]Geoapify {path} returned invalid JSON: {e}[/]")
            return None

    async def isochrone(
        self, coords: Coordinates, mode: TravelMode, minutes: int
    ) -> Optional[Isochrone]:
        """Area reachable from `coords` within `minutes` by `mode`."""
        profile = GEOAPIFY_PROFILES[mode]

        async def fetch() -> Optional[dict]:
            data = await self._geoapify_get(
                "isoline",
                {
                    "lat": coords.lat,
                    "lon": coords.lng,
                    "type": "time",
                    "mode": profile,
                    "traffic": "approximated",
                    "range": minutes * 60,
                },
            )
            features = (data or {}).get("features") or []
            if not features:
                return None

            geometry = features[0].get("geometry") or {}
            if geometry.get("type") == "Polygon":
                # Outer ring only
                polygon = geometry["coordinates"][0]
            elif geometry.get("type") == "MultiPolygon":
                # Outer ring of the first polygon
                polygon = geometry["coordinates"][0][0]
            else:
                return None
            return {"mode": mode, "polygon": polygon}

        data = await self.cache.get_or_set(
            f"isochrone:{profile}:{coords.lat},{coords.lng}:{minutes}", fetch, LONG_CACHE_TTL_MS
        )
        return Isochrone(**data) if data else None

    async def route_time(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> Optional[int]:
        """Travel time in minutes for bike, car or walk."""
        profile = GEOAPIFY_PROFILES[mode]

        async def fetch() -> Optional[int]:
            data = await self._geoapify_get(
                "routing",
                {
                    "waypoints": f"{origin.lat},{origin.lng}|{destination.lat},{destination.lng}",
                    "mode": profile,
                },
            )
            features = (data or {}).get("features") or []
            if not features:
                return None
            seconds = features[0].get("properties", {}).get("time")
            if seconds is None:
                return None
            return round(seconds / 60)

        key = f"route:{profile}:{origin.lat},{origin.lng}-{destination.lat},{destination.lng}"
        return await self.cache.get_or_set(key, fetch, LONG_CACHE_TTL_MS)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
