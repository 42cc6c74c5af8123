"""Work out where to look for listings from a destination and travel budgets."""

import asyncio
from typing import AsyncIterator, Optional, Union

from rich.console import Console

from property_finder.config.settings import DEFAULT_PLACE, SEARCH_AREA_PADDING_KM
from property_finder.models.search import (
    Coordinates,
    FilterCriteria,
    Isochrone,
    MetadataEvent,
    Place,
    ProgressEvent,
    SearchArea,
    SearchEvent,
    SearchMetadata,
)
from property_finder.utils.geo import (
    does_polygon_intersect_bounding_box,
    haversine_distance,
    merge_bounding_boxes,
    pad_bounding_box,
    polygon_bounding_box,
)

console = Console()


def place_from_text(destination: str) -> str:
    """First comma separated part of the destination, e.g. the city."""
    return destination.split(",")[0].strip()


def _metadata(**fields) -> MetadataEvent:
    return MetadataEvent(metadata=SearchMetadata(**fields))


class SearchAreaResolver:
    """Geocode the destination, compute reachable areas and list places in them.

    Falls back to a radius search around the destination, and finally to a
    single place taken from the destination text, so the area always has
    at least one place.
    """

    def __init__(self, geo, places_client, padding_km: float = SEARCH_AREA_PADDING_KM):
        self.geo = geo
        self.places_client = places_client
        self.padding_km = padding_km

    async def _isochrones(self, coords: Coordinates, criteria: FilterCriteria) -> list[Isochrone]:
        requests = []
        for mode in criteria.travel_modes:
            minutes = criteria.max_travel_times.get(mode) or 0
            if minutes > 0:
                requests.append(self.geo.isochrone(coords, mode, minutes))
        results = await asyncio.gather(*requests)
        return [iso for iso in results if iso is not None]

    async def resolve(self, criteria: FilterCriteria) -> AsyncIterator[Union[SearchEvent, SearchArea]]:
        """Yield progress and metadata events, then the SearchArea as the last item."""
        area = SearchArea()

        if criteria.destination:
            yield ProgressEvent(message=f"Geocoding: {criteria.destination}...")
            area.destination = await self.geo.geocode(criteria.destination)
            if area.destination:
                yield _metadata(destination=area.destination)
            else:
                console.print(f"[yellow]Could not geocode destination: {criteria.destination}[/]")

            if area.destination and criteria.travel_modes:
                yield ProgressEvent(message="Calculating reachable areas...")
                area.isochrones = await self._isochrones(area.destination, criteria)

                if area.isochrones:
                    yield _metadata(isochrones=area.isochrones)
                    yield ProgressEvent(message="Finding locations within reachable areas...")
                    async for event in self._places_in_isochrones(area):
                        yield event
                else:
                    yield ProgressEvent(
                        message="Warning: Could not get reachable area. Search may be slow."
                    )

            if not area.places and area.destination:
                yield ProgressEvent(message="Using radius search as fallback...")
                names = await self.places_client.nearby_places(area.destination)
                area.places = [Place(name=name) for name in names]
                if area.places:
                    yield _metadata(search_locations=[p.name for p in area.places])

        if not area.places:
            name = place_from_text(criteria.destination) or DEFAULT_PLACE
            area.places = [Place(name=name)]
            yield _metadata(search_locations=[name])

        yield area

    async def _places_in_isochrones(self, area: SearchArea) -> AsyncIterator[SearchEvent]:
        merged = merge_bounding_boxes(polygon_bounding_box(iso.polygon) for iso in area.isochrones)
        area.bounding_box = pad_bounding_box(merged, self.padding_km)

        candidates = await self.places_client.places_in_bbox(area.bounding_box)
        if not candidates:
            return

        yield ProgressEvent(message=f"Checking {len(candidates)} locations...")
        reachable = [
            place
            for place in candidates
            if any(does_polygon_intersect_bounding_box(iso.polygon, place.bbox) for iso in area.isochrones)
        ]
        destination = area.destination
        reachable.sort(
            key=lambda p: haversine_distance(
                destination.lat, destination.lng, p.bbox.center.lat, p.bbox.center.lng
            )
        )

        unique: dict[str, Place] = {}
        for place in reachable:
            unique.setdefault(place.name, place)
        area.places = list(unique.values())
        if area.places:
            yield _metadata(search_locations=[p.name for p in area.places])

    async def resolve_area(self, criteria: FilterCriteria) -> SearchArea:
        """Resolve without events."""
        area: Optional[SearchArea] = None
        async for item in self.resolve(criteria):
            if isinstance(item, SearchArea):
                area = item
        return area
