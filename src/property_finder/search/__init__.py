"""Search pipeline: area resolution, de-duplication and result streaming."""

from property_finder.search.merge import are_duplicates, merge_listings
from property_finder.search.property_set import PropertySet
from property_finder.search.streams import merge_streams

__all__ = ["PropertySet", "are_duplicates", "merge_listings", "merge_streams"]
