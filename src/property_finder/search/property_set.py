"""Grid-indexed set of listings that folds near-duplicates into one entry."""

from collections import defaultdict
from typing import Iterable, Iterator, Optional

from property_finder.config.settings import DEDUP_CELL_SIZE, DUPLICATE_MAX_DISTANCE_KM
from property_finder.models.listing import Listing
from property_finder.search.merge import are_duplicates, merge_listings
from property_finder.utils.geo import cell_reach, grid_cell

Cell = tuple[int, int]


class PropertySet:
    """Listings keyed by id with a spatial grid for duplicate lookups.

    Not safe for concurrent mutation; one search loop owns one instance.
    """

    def __init__(self, listings: Iterable[Listing] = (), cell_size: float = DEDUP_CELL_SIZE):
        self.cell_size = cell_size
        self._listings: dict[str, Listing] = {}
        self._grid: dict[Cell, set[str]] = defaultdict(set)
        # component id -> composite id of the entry holding it
        self._components: dict[str, str] = {}
        for listing in listings:
            self.add(listing)

    def _cell(self, listing: Listing) -> Optional[Cell]:
        if not listing.has_coordinates:
            return None
        return grid_cell(listing.lat, listing.lng, self.cell_size)

    def _insert(self, listing: Listing) -> None:
        self._listings[listing.id] = listing
        for component in listing.component_ids:
            self._components[component] = listing.id
        cell = self._cell(listing)
        if cell is not None:
            self._grid[cell].add(listing.id)

    def _remove(self, listing_id: str) -> None:
        listing = self._listings.pop(listing_id)
        for component in listing.component_ids:
            if self._components.get(component) == listing_id:
                del self._components[component]
        cell = self._cell(listing)
        if cell is not None:
            self._grid[cell].discard(listing_id)
            if not self._grid[cell]:
                del self._grid[cell]

    def _neighbour_ids(self, listing: Listing) -> list[str]:
        cell = self._cell(listing)
        if cell is None:
            return []
        x, y = cell
        reach_x, reach_y = cell_reach(listing.lat, self.cell_size, DUPLICATE_MAX_DISTANCE_KM)
        ids = []
        for dx in range(-reach_x, reach_x + 1):
            for dy in range(-reach_y, reach_y + 1):
                ids.extend(self._grid.get((x + dx, y + dy), ()))
        return ids

    def _find_all(self, listing: Listing) -> list[Listing]:
        """Every stored entry that shares an id with, or duplicates, `listing`."""
        found: dict[str, Listing] = {}
        for component in listing.component_ids:
            existing_id = self._components.get(component)
            if existing_id is not None:
                found[existing_id] = self._listings[existing_id]

        for candidate_id in self._neighbour_ids(listing):
            if candidate_id in found:
                continue
            candidate = self._listings[candidate_id]
            if are_duplicates(candidate, listing):
                found[candidate_id] = candidate

        if len(found) < 2:
            return list(found.values())

        # Keep insertion order so the first-seen entry stays primary on ties
        order = {listing_id: i for i, listing_id in enumerate(self._listings)}
        return sorted(found.values(), key=lambda l: order[l.id])

    def find_duplicate(self, listing: Listing) -> Optional[Listing]:
        """Return a stored listing matching `listing`, without changing the set."""
        matches = self._find_all(listing)
        return matches[0] if matches else None

    def add(self, listing: Listing) -> Listing:
        """Insert a listing, merging it with any duplicates already present.

        Returns the stored listing, which is the merged one if duplicates
        were found.
        """
        matches = self._find_all(listing)
        if not matches:
            self._insert(listing)
            return listing

        merged = matches[0]
        for match in matches[1:]:
            merged = merge_listings(merged, match)
        merged = merge_listings(merged, listing)

        for match in matches:
            self._remove(match.id)
        self._insert(merged)
        return merged

    def add_for_lookup_only(self, listing: Listing) -> None:
        """Index a listing without duplicate checks (e.g. an exclusion list)."""
        if listing.id in self._listings:
            self._remove(listing.id)
        self._insert(listing)

    def get(self, listing_id: str) -> Optional[Listing]:
        return self._listings.get(listing_id)

    def all(self) -> list[Listing]:
        return list(self._listings.values())

    def __iter__(self) -> Iterator[Listing]:
        return iter(list(self._listings.values()))

    def __len__(self) -> int:
        return len(self._listings)

    def __contains__(self, listing_id: object) -> bool:
        return listing_id in self._listings
