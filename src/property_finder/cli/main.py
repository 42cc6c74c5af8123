"""CLI entry point for the property finder."""

import asyncio
import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx
import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.table import Table

from property_finder.config.settings import (
    CACHE_DB_PATH,
    EXCLUSIONS_DB_PATH,
    LAST_RESULTS_PATH,
    TIMEOUT,
    TRAVEL_MODES,
    load_search_config,
)
from property_finder.models.listing import Listing
from property_finder.models.search import (
    Coordinates,
    FilterBucket,
    FilterCriteria,
    RangeFilter,
)
from property_finder.utils.geo import haversine_distance

app = typer.Typer(
    name="property-finder", help="Swiss rental listing search with commute time filters"
)
console = Console()

listings_adapter = TypeAdapter(list[Listing])


class CategoryOption(str, Enum):
    """Listing category options."""
    unit = "unit"
    shared_room = "shared-room"


class DurationOption(str, Enum):
    permanent = "permanent"
    temporary = "temporary"


class GenderOption(str, Enum):
    any = "any"
    male = "male"
    female = "female"


def _split_values(values: Optional[list[str]]) -> list[str]:
    """Handle both --sources a --sources b AND --sources a,b."""
    result = []
    for value in values or []:
        result.extend(v.strip() for v in value.split(",") if v.strip())
    return result


def build_criteria(
    destination: str,
    modes: list[str],
    max_times: dict[str, Optional[int]],
    category: CategoryOption,
    price: tuple[Optional[float], Optional[float]],
    rooms: tuple[Optional[float], Optional[float]] = (None, None),
    size: tuple[Optional[float], Optional[float]] = (None, None),
    roommates: tuple[Optional[float], Optional[float]] = (None, None),
    exclude_keywords: str = "",
    duration: DurationOption = DurationOption.permanent,
    gender: GenderOption = GenderOption.any,
) -> FilterCriteria:
    """Build filter criteria with a single bucket from CLI options."""
    unknown = [m for m in modes if m not in TRAVEL_MODES]
    if unknown:
        console.print(f"[red]Unknown travel mode(s): {', '.join(unknown)}[/]")
        raise typer.Exit(1)

    bucket = FilterBucket(
        category=category.value,
        price=RangeFilter(min=price[0], max=price[1]),
        rooms=RangeFilter(min=rooms[0], max=rooms[1]),
        size=RangeFilter(min=size[0], max=size[1]),
        roommates=RangeFilter(min=roommates[0], max=roommates[1]),
    )
    return FilterCriteria(
        buckets=[bucket],
        exclusion_keywords=exclude_keywords,
        gender_preference=gender.value,
        rental_duration=duration.value,
        destination=destination,
        travel_modes=modes,
        max_travel_times={mode: minutes for mode, minutes in max_times.items() if minutes},
    )


def best_travel_time(listing: Listing, modes: list[str]) -> float:
    times = [listing.commute_times.get(m) for m in modes]
    times = [t for t in times if t is not None]
    return min(times) if times else math.inf


def sort_results(
    listings: list[Listing], modes: list[str], destination: Optional[Coordinates]
) -> list[Listing]:
    """Best travel time first, distance to the destination breaks ties."""

    def distance(listing: Listing) -> float:
        if not destination or not listing.has_coordinates:
            return math.inf
        return haversine_distance(listing.lat, listing.lng, destination.lat, destination.lng)

    return sorted(listings, key=lambda l: (best_travel_time(l, modes), distance(l)))


def print_results(listings: list[Listing], modes: list[str], limit: int) -> None:
    if not listings:
        console.print("[yellow]No listings found.[/]")
        return

    table = Table(title=f"Results ({len(listings)})", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("CHF", justify="right")
    table.add_column("Rooms", justify="right")
    table.add_column("m²", justify="right")
    for mode in modes:
        table.add_column(f"{mode} (min)", justify="right")
    table.add_column("Sources")

    for listing in listings[:limit]:
        times = []
        for mode in modes:
            minutes = listing.commute_times.get(mode)
            times.append("-" if minutes is None else str(minutes))
        table.add_row(
            listing.id,
            listing.title,
            str(listing.price),
            f"{listing.rooms:g}",
            f"{listing.size:g}" if listing.size else "-",
            *times,
            ", ".join(p.name for p in listing.providers),
        )
    console.print(table)
    if len(listings) > limit:
        console.print(f"[dim]... and {len(listings) - limit} more[/]")


def save_last_results(listings: list[Listing], path: Path = LAST_RESULTS_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(listings_adapter.dump_json(listings))


def load_last_results(path: Path = LAST_RESULTS_PATH) -> list[Listing]:
    if not path.exists():
        return []
    return listings_adapter.validate_json(path.read_bytes())


async def _run_search(criteria, config, since_hours, limit):
    from property_finder.search.collector import ResultCollector
    from property_finder.search.orchestrator import SearchOrchestrator
    from property_finder.storage import SQLiteCache, SQLiteExclusionStore

    created_after = None
    if since_hours:
        created_after = datetime.now(timezone.utc) - timedelta(hours=since_hours)

    with SQLiteExclusionStore(EXCLUSIONS_DB_PATH) as exclusions:
        excluded = exclusions.all()

    collector = ResultCollector()
    with SQLiteCache(CACHE_DB_PATH) as cache:
        async with httpx.AsyncClient(timeout=TIMEOUT, follow_redirects=True) as http:
            orchestrator = SearchOrchestrator.create(cache, http=http)
            async for event in orchestrator.stream(criteria, config, excluded, created_after):
                collector.apply(event)
                if event.type == "progress":
                    console.print(f"[cyan]{event.message}[/]")
                elif event.type == "properties":
                    console.print(f"  [green]+{len(event.listings)} listing(s)[/]")

    results = sort_results(collector.listings(), criteria.travel_modes, collector.metadata.destination)
    save_last_results(results)
    if collector.metadata.search_locations:
        console.print(f"[dim]Searched: {', '.join(collector.metadata.search_locations)}[/]")
    print_results(results, criteria.travel_modes, limit)


@app.command()
def search(
    destination: str = typer.Argument("", help="Where you commute to, e.g. 'Bahnhofstrasse 1, Zürich'"),
    modes: list[str] = typer.Option(
        None, "--mode", "-m", help="Travel mode: public, bike, car or walk (repeatable)"
    ),
    max_public: Optional[int] = typer.Option(None, "--max-public", help="Max minutes by public transport"),
    max_bike: Optional[int] = typer.Option(None, "--max-bike", help="Max minutes by bike"),
    max_car: Optional[int] = typer.Option(None, "--max-car", help="Max minutes by car"),
    max_walk: Optional[int] = typer.Option(None, "--max-walk", help="Max minutes on foot"),
    category: CategoryOption = typer.Option(CategoryOption.unit, "--category", "-c", help="unit or shared-room"),
    min_price: Optional[float] = typer.Option(None, "--min-price", help="Minimum rent in CHF"),
    max_price: Optional[float] = typer.Option(None, "--max-price", help="Maximum rent in CHF"),
    min_rooms: Optional[float] = typer.Option(None, "--min-rooms", help="Minimum number of rooms"),
    max_rooms: Optional[float] = typer.Option(None, "--max-rooms", help="Maximum number of rooms"),
    min_size: Optional[float] = typer.Option(None, "--min-size", help="Minimum living area in m²"),
    max_size: Optional[float] = typer.Option(None, "--max-size", help="Maximum living area in m²"),
    min_roommates: Optional[float] = typer.Option(None, "--min-roommates", help="Shared rooms only"),
    max_roommates: Optional[float] = typer.Option(None, "--max-roommates", help="Shared rooms only"),
    exclude_keywords: str = typer.Option("", "--exclude-keywords", "-x", help="Comma separated"),
    duration: DurationOption = typer.Option(DurationOption.permanent, "--duration", help="permanent or temporary"),
    gender: GenderOption = typer.Option(GenderOption.any, "--gender", help="Shared rooms: any, male or female"),
    sources: list[str] = typer.Option(None, "--sources", "-s", help="Only these sources (e.g. comparis,tutti.ch)"),
    request_limit: Optional[int] = typer.Option(None, "--request-limit", help="Max requests per source"),
    public_transport: bool = typer.Option(
        True, "--public-transport/--no-public-transport", help="Query public transport times"
    ),
    since_hours: Optional[int] = typer.Option(None, "--since-hours", help="Only listings newer than this"),
    limit: int = typer.Option(50, "--limit", "-n", help="Rows to show"),
):
    """
    Search rental listings, optionally within a commute time of a destination.

    Examples:
        property-finder search "ETH Zürich" -m public --max-public 30
        property-finder search Bern -m bike --max-bike 20 --max-price 2500 --min-rooms 2.5
        property-finder search Zürich -c shared-room --max-price 1000 -s tutti.ch
    """
    criteria = build_criteria(
        destination,
        list(modes or []),
        {"public": max_public, "bike": max_bike, "car": max_car, "walk": max_walk},
        category,
        (min_price, max_price),
        rooms=(min_rooms, max_rooms),
        size=(min_size, max_size),
        roommates=(min_roommates, max_roommates),
        exclude_keywords=exclude_keywords,
        duration=duration,
        gender=gender,
    )

    config = load_search_config()
    source_filter = _split_values(sources)
    if source_filter:
        config.enabled_sources = source_filter
    if request_limit is not None:
        config.request_limit = request_limit
    config.query_public_transport = public_transport

    console.print("[bold]Property Finder - search[/]")
    console.print(f"   Destination: {destination or '-'}")
    if criteria.travel_modes:
        console.print(f"   Modes: {', '.join(criteria.travel_modes)}")
    console.print(f"   Sources: {', '.join(config.enabled_sources)}")

    asyncio.run(_run_search(criteria, config, since_hours, limit))


@app.command()
def new_listings(
    destination: str = typer.Argument("", help="Where you commute to"),
    modes: list[str] = typer.Option(None, "--mode", "-m", help="Travel mode (repeatable)"),
    max_public: Optional[int] = typer.Option(None, "--max-public"),
    max_bike: Optional[int] = typer.Option(None, "--max-bike"),
    max_car: Optional[int] = typer.Option(None, "--max-car"),
    max_walk: Optional[int] = typer.Option(None, "--max-walk"),
    category: CategoryOption = typer.Option(CategoryOption.unit, "--category", "-c"),
    min_price: Optional[float] = typer.Option(None, "--min-price"),
    max_price: Optional[float] = typer.Option(None, "--max-price"),
    min_rooms: Optional[float] = typer.Option(None, "--min-rooms"),
    since_hours: int = typer.Option(24, "--since-hours", help="Look back this many hours"),
):
    """
    Report listings published since a cutoff, with all commute times.

    Examples:
        property-finder new-listings "ETH Zürich" -m public --max-public 30
        property-finder new-listings Bern --since-hours 48 --max-price 2000
    """
    criteria = build_criteria(
        destination,
        list(modes or []),
        {"public": max_public, "bike": max_bike, "car": max_car, "walk": max_walk},
        category,
        (min_price, max_price),
        rooms=(min_rooms, None),
    )
    created_after = datetime.now(timezone.utc) - timedelta(hours=since_hours)

    async def run():
        from property_finder.search.orchestrator import SearchOrchestrator
        from property_finder.search.report import collect_new_listings
        from property_finder.storage import SQLiteCache, SQLiteExclusionStore

        with SQLiteExclusionStore(EXCLUSIONS_DB_PATH) as exclusions:
            excluded = exclusions.all()
        with SQLiteCache(CACHE_DB_PATH) as cache:
            async with httpx.AsyncClient(timeout=TIMEOUT, follow_redirects=True) as http:
                orchestrator = SearchOrchestrator.create(cache, http=http)
                return await collect_new_listings(
                    orchestrator,
                    criteria,
                    created_after,
                    config=load_search_config(),
                    excluded=excluded,
                    on_progress=lambda message: console.print(f"[cyan]{message}[/]"),
                )

    report = asyncio.run(run())
    console.print(f"\n[bold]New listings since {created_after:%Y-%m-%d %H:%M} UTC[/]")
    save_last_results(report.listings)
    print_results(report.listings, list(TRAVEL_MODES), len(report.listings))


@app.command()
def exclude(
    listing_id: str = typer.Argument(..., help="Listing id from the last search results"),
):
    """
    Hide a listing (and its duplicates) from future searches.

    Examples:
        property-finder exclude comparis-12345
    """
    from property_finder.storage import SQLiteExclusionStore

    listing = next((l for l in load_last_results() if l.id == listing_id), None)
    if listing is None:
        console.print(f"[red]Listing not found in last results: {listing_id}[/]")
        raise typer.Exit(1)

    with SQLiteExclusionStore(EXCLUSIONS_DB_PATH) as exclusions:
        exclusions.add(listing)
        console.print(f"[green]Excluded {listing.id}[/] ({len(exclusions)} excluded)")


@app.command()
def include(
    listing_id: str = typer.Argument(..., help="Id of an excluded listing"),
):
    """Show a previously excluded listing again."""
    from property_finder.storage import SQLiteExclusionStore

    with SQLiteExclusionStore(EXCLUSIONS_DB_PATH) as exclusions:
        if exclusions.remove(listing_id):
            console.print(f"[green]Removed {listing_id} from exclusions[/]")
        else:
            console.print(f"[yellow]{listing_id} was not excluded[/]")


@app.command()
def exclusions():
    """List excluded listings, most recent first."""
    from property_finder.storage import SQLiteExclusionStore

    with SQLiteExclusionStore(EXCLUSIONS_DB_PATH) as store:
        excluded = store.all()

    if not excluded:
        console.print("[yellow]No excluded listings.[/]")
        return

    table = Table(title=f"Excluded ({len(excluded)})", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", max_width=50)
    table.add_column("CHF", justify="right")
    table.add_column("Address")
    for listing in excluded:
        table.add_row(listing.id, listing.title, str(listing.price), listing.address)
    console.print(table)


@app.command()
def cache_cleanup(
    db_path: Path = typer.Option(CACHE_DB_PATH, "--db", "-d", help="Cache database path"),
):
    """Delete expired cache entries."""
    from property_finder.storage import SQLiteCache

    if not db_path.exists():
        console.print(f"[red]Cache not found: {db_path}[/]")
        raise typer.Exit(1)

    with SQLiteCache(db_path) as cache:
        removed = asyncio.run(cache.cleanup())
    console.print(f"[green]Removed {removed} expired cache entries[/]")


if __name__ == "__main__":
    app()
