"""Place lookups (cities, towns, villages) from OpenStreetMap via Overpass."""

from typing import Optional

import httpx
from rich.console import Console

from property_finder.config.settings import (
    LONG_CACHE_TTL_MS,
    NEARBY_PLACES_LIMIT,
    NEARBY_PLACES_RADIUS_KM,
    OVERPASS_ENDPOINTS,
    OVERPASS_TIMEOUT,
)
from property_finder.models.search import BoundingBox, Coordinates, Place
from property_finder.storage.cache import CacheStore

console = Console()


class PlacesClient:
    """Overpass queries with fallback across public endpoints."""

    def __init__(
        self,
        cache: CacheStore,
        geo=None,
        http: Optional[httpx.AsyncClient] = None,
        endpoints: Optional[list[str]] = None,
    ):
        """
        Args:
            cache: Cache for query results
            geo: Optional GeoClient used to put the city at the point first
            http: Shared HTTP client (one is created when omitted)
            endpoints: Overpass endpoints, tried in order
        """
        self.cache = cache
        self.geo = geo
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=OVERPASS_TIMEOUT)
        self.endpoints = endpoints or OVERPASS_ENDPOINTS

    async def execute(self, query: str) -> Optional[dict]:
        """Run a query on the first endpoint that answers.

        Server errors and network failures move on to the next endpoint, a
        client error aborts since the query itself is likely malformed.
        """
        for endpoint in self.endpoints:
            try:
                resp = await self.http.get(endpoint, params={"data": query})
            except httpx.HTTPError as e:
                console.print(f"[yellow]Overpass endpoint {endpoint} failed: {e}[/]")
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError as e:
                    console.print(f"[yellow]Overpass endpoint {endpoint} returned invalid JSON: {e}[/]")
                    continue

            console.print(f"[yellow]Overpass error at {endpoint}: HTTP {resp.status_code}[/]")
            if 400 <= resp.status_code < 500:
                console.print("[red]Overpass query rejected, not trying other endpoints[/]")
                return None

        console.print("[red]All Overpass endpoints failed[/]")
        return None

    async def places_in_bbox(self, bbox: BoundingBox) -> list[Place]:
        """Places with an administrative boundary whose centre node lies in the box."""

        async def fetch() -> list[dict]:
            query = (
                "[out:json][timeout:90];"
                f'node["place"~"^(city|town|village)$"]'
                f"({bbox.min_lat},{bbox.min_lng},{bbox.max_lat},{bbox.max_lng})->.places;"
                'rel(bn.places)["boundary"="administrative"]["admin_level"~"^[89]$"];'
                "out tags bb;"
            )
            data = await self.execute(query)
            if not data or "elements" not in data:
                return []

            places: dict[str, dict] = {}
            for element in data["elements"]:
                name = (element.get("tags") or {}).get("name")
                bounds = element.get("bounds")
                if not name or not bounds or name in places:
                    continue
                places[name] = {
                    "name": name,
                    "bbox": {
                        "min_lat": bounds["minlat"],
                        "min_lng": bounds["minlon"],
                        "max_lat": bounds["maxlat"],
                        "max_lng": bounds["maxlon"],
                    },
                }
            return list(places.values())

        key = f"places-in-bbox:{bbox.min_lat},{bbox.min_lng},{bbox.max_lat},{bbox.max_lng}"
        data = await self.cache.get_or_set(key, fetch, LONG_CACHE_TTL_MS)
        return [Place(**p) for p in data or []]

    async def nearby_places(
        self, coords: Coordinates, radius_km: float = NEARBY_PLACES_RADIUS_KM
    ) -> list[str]:
        """Names of places around a point, led by the city at the point itself."""

        async def fetch() -> list[str]:
            query = (
                "[out:json][timeout:40];"
                f'(node["place"~"^(city|town|village)$"]'
                f"(around:{radius_km * 1000},{coords.lat},{coords.lng}););"
                "out body;"
            )
            data = await self.execute(query)
            names = [
                el["tags"]["name"]
                for el in (data or {}).get("elements", [])
                if (el.get("tags") or {}).get("name")
            ]

            primary = await self.geo.reverse_city(coords) if self.geo else None
            if primary:
                names.insert(0, primary)

            # Unique, in order
            return list(dict.fromkeys(names))[:NEARBY_PLACES_LIMIT]

        key = f"nearby-places:{coords.lat},{coords.lng}:{radius_km}"
        return await self.cache.get_or_set(key, fetch, LONG_CACHE_TTL_MS) or []

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()
