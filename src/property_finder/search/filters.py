"""Predicates applied to listings during a search."""

from typing import Optional

from property_finder.models.listing import Listing
from property_finder.models.search import FilterBucket, FilterCriteria, RangeFilter


def check_range(value: Optional[float], range_filter: RangeFilter) -> bool:
    """A missing value only matches an empty range."""
    if value is None:
        return range_filter.is_empty
    if range_filter.min is not None and value < range_filter.min:
        return False
    if range_filter.max is not None and value > range_filter.max:
        return False
    return True


def matches_bucket(listing: Listing, bucket: FilterBucket) -> bool:
    # A listing only matches buckets of its own category
    if listing.category != bucket.category:
        return False
    if not check_range(listing.price, bucket.price):
        return False
    if bucket.category == "unit":
        return check_range(listing.rooms, bucket.rooms) and check_range(listing.size, bucket.size)
    return check_range(listing.roommates, bucket.roommates)


def matches_buckets(listing: Listing, criteria: FilterCriteria) -> bool:
    """True if the listing matches any bucket, or no buckets are defined."""
    if not criteria.buckets:
        return True
    return any(matches_bucket(listing, bucket) for bucket in criteria.buckets)


def parse_keywords(keywords: str) -> list[str]:
    return [k.strip().lower() for k in keywords.split(",") if k.strip()]


def matches_advanced_filters(listing: Listing, criteria: FilterCriteria) -> bool:
    """Keyword exclusion, rental duration and gender preference."""
    text = f"{listing.title} {listing.description}".lower()
    if any(keyword in text for keyword in parse_keywords(criteria.exclusion_keywords)):
        return False

    if criteria.rental_duration == "permanent" and listing.rental_duration == "temporary":
        return False
    if criteria.rental_duration == "temporary" and listing.rental_duration != "temporary":
        return False

    # Gender preference only applies to shared rooms
    if listing.category == "shared-room":
        preference = criteria.gender_preference
        if preference == "male" and listing.gender_preference == "female":
            return False
        if preference == "female" and listing.gender_preference == "male":
            return False

    return True


def matches_general_filters(listing: Listing, criteria: FilterCriteria) -> bool:
    return matches_advanced_filters(listing, criteria) and matches_buckets(listing, criteria)


def matches_travel_filters(listing: Listing, criteria: FilterCriteria) -> bool:
    """True if any selected mode is within its time limit.

    Not applicable (always True) without a destination or selected modes.
    """
    if not criteria.destination or not criteria.travel_modes:
        return True

    for mode in criteria.travel_modes:
        max_time = criteria.max_travel_times.get(mode)
        if not max_time or max_time <= 0:
            continue
        travel_time = listing.commute_times.get(mode)
        if travel_time is not None and travel_time <= max_time:
            return True
    return False
