"""Duplicate detection and merging of listings found on several sources."""

from property_finder.config.settings import (
    DUPLICATE_MAX_DISTANCE_KM,
    DUPLICATE_MAX_SIZE_DIFF,
    DUPLICATE_MIN_PRICE_DIFF,
    DUPLICATE_PRICE_RATIO,
)
from property_finder.models.listing import ID_SEPARATOR, Listing
from property_finder.utils.geo import haversine_distance


def are_duplicates(a: Listing, b: Listing) -> bool:
    """Heuristic check whether two listings describe the same property.

    Both need coordinates, must lie within 75 m, have prices within 5% of
    the larger price (at least CHF 50), the same room count and, when both
    sizes are known, sizes within 10 m².
    """
    if not a.has_coordinates or not b.has_coordinates:
        return False

    if haversine_distance(a.lat, a.lng, b.lat, b.lng) > DUPLICATE_MAX_DISTANCE_KM:
        return False

    price_threshold = max(max(a.price, b.price) * DUPLICATE_PRICE_RATIO, DUPLICATE_MIN_PRICE_DIFF)
    if abs(a.price - b.price) > price_threshold:
        return False

    if a.rooms != b.rooms:
        return False

    if a.size and b.size and abs(a.size - b.size) > DUPLICATE_MAX_SIZE_DIFF:
        return False

    return True


def merge_ids(*listings: Listing) -> str:
    ids = set()
    for listing in listings:
        ids.update(listing.component_ids)
    return ID_SEPARATOR.join(sorted(ids))


def merge_listings(a: Listing, b: Listing) -> Listing:
    """Merge two duplicates into one listing.

    The listing with more images is the primary; on a tie `a` is. The
    primary keeps its fields, the secondary only fills gaps.
    """
    primary, secondary = (b, a) if len(b.image_urls) > len(a.image_urls) else (a, b)

    providers = list(primary.providers)
    seen = {p.name for p in providers}
    for provider in secondary.providers:
        if provider.name not in seen:
            providers.append(provider)
            seen.add(provider.name)

    created = [d for d in (primary.created_at, secondary.created_at) if d is not None]

    commute_times = dict(secondary.commute_times)
    commute_times.update(primary.commute_times)

    return primary.model_copy(
        update={
            "id": merge_ids(primary, secondary),
            "providers": providers,
            "size": primary.size or secondary.size,
            "created_at": min(created) if created else None,
            "commute_times": commute_times,
        }
    )
