"""Listing sources queried during a search."""

from property_finder.sources.base import SourceAdapter, SourcePage, load_source_class
from property_finder.sources.comparis import ComparisSource
from property_finder.sources.tutti import TuttiSource

__all__ = ["SourceAdapter", "SourcePage", "load_source_class", "ComparisSource", "TuttiSource"]
