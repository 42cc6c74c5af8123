"""Commute time enrichment backed by a grid-bucketed cache."""

import asyncio
from typing import Optional, Sequence

from rich.console import Console

from property_finder.config.settings import (
    LONG_CACHE_TTL_MS,
    TRAVEL_MODES,
    TRAVEL_TIME_CELL_SIZE,
)
from property_finder.models.listing import Listing, TravelMode
from property_finder.models.search import Coordinates
from property_finder.storage.cache import CacheStore
from property_finder.utils.geo import grid_cell

console = Console()

CellTimes = dict[str, Optional[int]]


class TravelTimeEnricher:
    """Fill listing commute times, one lookup per ~222 m grid cell.

    Every listing in a cell shares the times computed for the first listing
    seen in it. Cached cell entries only ever grow: a later call asking for
    more modes fetches just the missing ones.
    """

    def __init__(self, cache: CacheStore, geo, transit, cell_size: float = TRAVEL_TIME_CELL_SIZE):
        self.cache = cache
        self.geo = geo
        self.transit = transit
        self.cell_size = cell_size

    def cache_key(self, cell: tuple[int, int], destination: Coordinates) -> str:
        x, y = cell
        return f"travel-time-cell:{x},{y}:{destination.lat},{destination.lng}"

    async def _fetch_mode(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode,
        query_public_transport: bool,
    ) -> Optional[int]:
        if mode == "public":
            if not query_public_transport:
                return None
            return await self.transit.public_transport_time(origin, destination)
        return await self.geo.route_time(origin, destination, mode)

    async def _cell_times(
        self,
        cell: tuple[int, int],
        origin: Coordinates,
        destination: Coordinates,
        modes: Sequence[TravelMode],
        query_public_transport: bool,
    ) -> CellTimes:
        key = self.cache_key(cell, destination)
        cached: CellTimes = await self.cache.get(key) or {}

        missing = [mode for mode in modes if mode not in cached]
        if not missing:
            return cached

        results = await asyncio.gather(
            *(
                self._fetch_mode(origin, destination, mode, query_public_transport)
                for mode in missing
            )
        )
        fresh = dict(zip(missing, results))

        # Unknown times are not stored so they get retried on the next search
        known = {mode: minutes for mode, minutes in fresh.items() if minutes is not None}
        if known:
            await self.cache.set(key, {**cached, **known}, LONG_CACHE_TTL_MS)
        return {**cached, **fresh}

    async def enrich(
        self,
        listings: Sequence[Listing],
        destination: Coordinates,
        modes: Sequence[TravelMode],
        query_public_transport: bool = True,
    ) -> list[Listing]:
        """Return the listings with the requested commute times filled in.

        Times already present on a listing are kept. Listings without
        coordinates come back unchanged.
        """
        origins: dict[tuple[int, int], Coordinates] = {}
        for listing in listings:
            if not listing.has_coordinates:
                continue
            cell = grid_cell(listing.lat, listing.lng, self.cell_size)
            origins.setdefault(cell, Coordinates(lat=listing.lat, lng=listing.lng))

        cells = list(origins)
        results = await asyncio.gather(
            *(
                self._cell_times(cell, origins[cell], destination, modes, query_public_transport)
                for cell in cells
            )
        )
        times_by_cell = dict(zip(cells, results))

        enriched = []
        for listing in listings:
            if not listing.has_coordinates:
                enriched.append(listing)
                continue
            cell_times = times_by_cell[grid_cell(listing.lat, listing.lng, self.cell_size)]
            commute_times = {mode: cell_times[mode] for mode in modes if mode in cell_times}
            commute_times.update(listing.commute_times)
            enriched.append(listing.model_copy(update={"commute_times": commute_times}))
        return enriched

    async def enrich_one(
        self,
        listing: Listing,
        destination: Coordinates,
        query_public_transport: bool = True,
    ) -> Listing:
        """Fill all travel modes for a single listing."""
        [enriched] = await self.enrich([listing], destination, TRAVEL_MODES, query_public_transport)
        return enriched
