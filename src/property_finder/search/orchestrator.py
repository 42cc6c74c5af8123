"""Main search pipeline that turns filter criteria into a stream of events."""

from datetime import datetime
from typing import AsyncIterator, Iterable, Optional, Sequence

import httpx
from rich.console import Console

from property_finder.config.settings import (
    ORCHESTRATOR_CHUNK_SIZE,
    SearchConfig,
    SourceSite,
    get_enabled_sources,
)
from property_finder.models.listing import Listing
from property_finder.models.search import (
    FilterCriteria,
    MetadataEvent,
    ProgressEvent,
    PropertiesEvent,
    RequestBudget,
    SearchArea,
    SearchContext,
    SearchEvent,
    SearchMetadata,
)
from property_finder.search.area import SearchAreaResolver
from property_finder.search.collector import ResultCollector
from property_finder.search.filters import matches_general_filters, matches_travel_filters
from property_finder.search.property_set import PropertySet
from property_finder.search.streams import merge_streams
from property_finder.services.geo_api import GeoClient
from property_finder.services.places import PlacesClient
from property_finder.services.transit import TransitClient
from property_finder.services.travel_times import TravelTimeEnricher
from property_finder.sources.base import SourceAdapter, load_source_class
from property_finder.storage.cache import CacheStore
from property_finder.utils.geo import is_point_in_polygon

console = Console()


def create_sources(
    cache: CacheStore,
    http: Optional[httpx.AsyncClient] = None,
    sites: Optional[Sequence[SourceSite]] = None,
) -> list[SourceAdapter]:
    """Instantiate the adapter of every enabled source site."""
    sources = []
    for site in sites if sites is not None else get_enabled_sources():
        adapter_class = load_source_class(site.adapter_class)
        sources.append(
            adapter_class(cache, http=http, requests_per_second=site.requests_per_second)
        )
    return sources


class SearchOrchestrator:
    """Runs one search at a time per call to `stream`.

    The area resolver, travel time enricher and sources are injected so
    that each can be replaced independently.
    """

    def __init__(
        self,
        resolver: SearchAreaResolver,
        enricher: TravelTimeEnricher,
        sources: Sequence[SourceAdapter],
        chunk_size: int = ORCHESTRATOR_CHUNK_SIZE,
    ):
        self.resolver = resolver
        self.enricher = enricher
        self.sources = list(sources)
        self.chunk_size = chunk_size

    @classmethod
    def create(cls, cache: CacheStore, http: Optional[httpx.AsyncClient] = None) -> "SearchOrchestrator":
        """Wire up the default collaborators around one cache and HTTP client."""
        geo = GeoClient(cache, http=http)
        places = PlacesClient(cache, geo=geo, http=http)
        transit = TransitClient(cache, http=http)
        return cls(
            resolver=SearchAreaResolver(geo, places),
            enricher=TravelTimeEnricher(cache, geo, transit),
            sources=create_sources(cache, http=http),
        )

    def active_sources(self, config: SearchConfig) -> list[SourceAdapter]:
        enabled = {name.lower() for name in config.enabled_sources}
        return [s for s in self.sources if s.name.lower() in enabled]

    async def stream(
        self,
        criteria: FilterCriteria,
        config: Optional[SearchConfig] = None,
        excluded: Iterable[Listing] = (),
        created_after: Optional[datetime] = None,
    ) -> AsyncIterator[SearchEvent]:
        """Yield progress, metadata and listing batches as the search runs."""
        config = config or SearchConfig()

        # Step 1: Determine the search area
        area = SearchArea()
        async for item in self.resolver.resolve(criteria):
            if isinstance(item, SearchArea):
                area = item
            else:
                yield item

        # Step 2: Set up sources with one request budget each
        sources = self.active_sources(config)
        if not sources:
            yield ProgressEvent(message="No listing sources are enabled. Search complete.")
            return

        budgets = {s.name: RequestBudget(limit=config.request_limit) for s in sources}
        context = SearchContext(
            criteria=criteria,
            places=area.places,
            bounding_box=area.bounding_box,
            created_after=created_after,
        )

        exclusion_set = PropertySet()
        for listing in excluded:
            exclusion_set.add_for_lookup_only(listing)

        property_set = PropertySet()
        collector = ResultCollector()
        enriched_count = 0

        yield ProgressEvent(
            message=f"Querying {len(area.places)} location(s) with {len(sources)} source(s)..."
        )

        # Step 3: Fetch from every source in parallel and process batches as they come
        merged_stream = merge_streams([s.fetch_listings(context, budgets[s.name]) for s in sources])
        try:
            async for batch in merged_stream:
                for i in range(0, len(batch), self.chunk_size):
                    chunk = batch[i : i + self.chunk_size]

                    # Step 3a: Drop anything matching an excluded listing
                    chunk = [l for l in chunk if exclusion_set.find_duplicate(l) is None]
                    chunk = [l for l in chunk if matches_general_filters(l, criteria)]

                    # Step 3b: De-duplicate and merge, keeping only the latest merged entry
                    merged = {}
                    for listing in chunk:
                        stored = property_set.add(listing)
                        merged[stored.id] = stored
                    results = [l for l in merged.values() if l.id in property_set]

                    # Step 3c: Keep only listings inside a reachable area
                    if area.destination and area.isochrones:
                        results = [
                            l
                            for l in results
                            if any(is_point_in_polygon(l.lat, l.lng, iso.polygon) for iso in area.isochrones)
                        ]

                    # Step 3d: Commute times and travel time limits
                    if results and area.destination and criteria.travel_modes:
                        enriched_count += len(results)
                        yield ProgressEvent(message=f"Enriching {enriched_count}+ listings...")
                        results = await self.enricher.enrich(
                            results,
                            area.destination,
                            criteria.travel_modes,
                            config.query_public_transport,
                        )
                        results = [l for l in results if matches_travel_filters(l, criteria)]

                    if results:
                        event = PropertiesEvent(listings=results)
                        collector.apply(event)
                        yield event
                        yield MetadataEvent(metadata=SearchMetadata(result_count=len(collector)))
        finally:
            await merged_stream.aclose()

        for source in sources:
            budget = budgets[source.name]
            console.print(f"[dim]{source.name}: {budget.count} request(s)[/]")

        yield ProgressEvent(message="Search complete.")
