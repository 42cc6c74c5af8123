"""Consumer-side view of a search event stream."""

from typing import Optional

from property_finder.models.listing import Listing
from property_finder.models.search import (
    MetadataEvent,
    ProgressEvent,
    PropertiesEvent,
    SearchEvent,
    SearchMetadata,
)


class ResultCollector:
    """Folds search events into the current result list and metadata.

    A merged listing replaces every earlier listing it was built from, so
    results never show the same property twice.
    """

    def __init__(self):
        self._listings: dict[str, Listing] = {}
        # component id -> id of the result currently holding it
        self._owners: dict[str, str] = {}
        self.metadata = SearchMetadata()
        self.messages: list[str] = []

    def add_listing(self, listing: Listing) -> None:
        for component in listing.component_ids:
            owner = self._owners.get(component)
            if owner is not None and owner != listing.id:
                self._retire(owner)
        self._listings[listing.id] = listing
        for component in listing.component_ids:
            self._owners[component] = listing.id

    def _retire(self, listing_id: str) -> None:
        retired = self._listings.pop(listing_id, None)
        if retired is None:
            return
        for component in retired.component_ids:
            if self._owners.get(component) == listing_id:
                del self._owners[component]

    def update_metadata(self, metadata: SearchMetadata) -> None:
        update = {
            name: getattr(metadata, name)
            for name in SearchMetadata.model_fields
            if getattr(metadata, name) is not None
        }
        self.metadata = self.metadata.model_copy(update=update)

    def apply(self, event: SearchEvent) -> None:
        if isinstance(event, PropertiesEvent):
            for listing in event.listings:
                self.add_listing(listing)
        elif isinstance(event, MetadataEvent):
            self.update_metadata(event.metadata)
        elif isinstance(event, ProgressEvent):
            self.messages.append(event.message)

    @property
    def last_message(self) -> Optional[str]:
        return self.messages[-1] if self.messages else None

    def listings(self) -> list[Listing]:
        return list(self._listings.values())

    def __len__(self) -> int:
        return len(self._listings)
