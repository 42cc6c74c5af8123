"""Non-streaming search used for "new listings since" notifications."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from property_finder.config.settings import TRAVEL_MODES, SearchConfig
from property_finder.models.listing import Listing
from property_finder.models.search import FilterCriteria, SearchMetadata
from property_finder.search.collector import ResultCollector
from property_finder.search.orchestrator import SearchOrchestrator

OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class NewListingsReport:
    listings: list[Listing] = field(default_factory=list)
    metadata: SearchMetadata = field(default_factory=SearchMetadata)


async def collect_new_listings(
    orchestrator: SearchOrchestrator,
    criteria: FilterCriteria,
    created_after: datetime,
    config: Optional[SearchConfig] = None,
    excluded: Iterable[Listing] = (),
    on_progress: Optional[Callable[[str], None]] = None,
) -> NewListingsReport:
    """Run a full search and return every listing created after the cutoff.

    Listings get commute times for all travel modes and are sorted newest
    first.
    """
    config = config or SearchConfig()
    collector = ResultCollector()

    async for event in orchestrator.stream(criteria, config, excluded, created_after):
        collector.apply(event)
        if event.type == "progress" and on_progress:
            on_progress(event.message)

    listings = collector.listings()
    destination = collector.metadata.destination
    if listings and destination:
        if on_progress:
            on_progress(f"Enriching {len(listings)} listings with all travel times...")
        listings = await orchestrator.enricher.enrich(
            listings, destination, TRAVEL_MODES, config.query_public_transport
        )

    listings.sort(key=lambda l: l.created_at or OLDEST, reverse=True)
    return NewListingsReport(listings=listings, metadata=collector.metadata)
