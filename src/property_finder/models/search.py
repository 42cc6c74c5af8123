"""Search inputs, search area and the event stream emitted by a search."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from property_finder.models.listing import (
    Category,
    GenderPreference,
    Listing,
    RentalDuration,
    TravelMode,
    ensure_aware,
)


class RangeFilter(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.min is None and self.max is None


class FilterBucket(BaseModel):
    """A named range predicate set plus the category it applies to."""

    id: str = "default"
    category: Category = "unit"
    price: RangeFilter = Field(default_factory=RangeFilter)
    rooms: RangeFilter = Field(default_factory=RangeFilter)
    size: RangeFilter = Field(default_factory=RangeFilter)
    roommates: RangeFilter = Field(default_factory=RangeFilter)

    def cache_fragment(self) -> str:
        """Stable representation without the user-chosen id."""
        return self.model_dump_json(exclude={"id"})


class FilterCriteria(BaseModel):
    """Everything the user asked for."""

    # === General filters ===
    buckets: list[FilterBucket] = Field(default_factory=list)
    exclusion_keywords: str = ""
    gender_preference: GenderPreference = "any"
    rental_duration: RentalDuration = "permanent"

    # === Travel filters ===
    destination: str = ""
    max_travel_times: dict[TravelMode, int] = Field(default_factory=dict)
    travel_modes: list[TravelMode] = Field(default_factory=list)


class Coordinates(BaseModel):
    lat: float
    lng: float


class BoundingBox(BaseModel):
    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float

    @property
    def center(self) -> Coordinates:
        return Coordinates(
            lat=(self.min_lat + self.max_lat) / 2,
            lng=(self.min_lng + self.max_lng) / 2,
        )


EMPTY_BBOX = BoundingBox(min_lng=0, max_lng=0, min_lat=0, max_lat=0)


class Place(BaseModel):
    """A city, town or village that sources can be queried for."""

    name: str
    bbox: BoundingBox = EMPTY_BBOX


class Isochrone(BaseModel):
    """Area reachable from the destination within a time budget."""

    mode: TravelMode
    polygon: list[list[float]]  # [[lng, lat], ...]


class SearchArea(BaseModel):
    destination: Optional[Coordinates] = None
    isochrones: list[Isochrone] = Field(default_factory=list)
    bounding_box: Optional[BoundingBox] = None
    places: list[Place] = Field(default_factory=list)


class SearchMetadata(BaseModel):
    """Partial metadata; unset fields are left out of events."""

    destination: Optional[Coordinates] = None
    search_locations: Optional[list[str]] = None
    isochrones: Optional[list[Isochrone]] = None
    result_count: Optional[int] = None


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    message: str


class MetadataEvent(BaseModel):
    type: Literal["metadata"] = "metadata"
    metadata: SearchMetadata


class PropertiesEvent(BaseModel):
    type: Literal["properties"] = "properties"
    listings: list[Listing]


SearchEvent = Union[ProgressEvent, MetadataEvent, PropertiesEvent]


@dataclass
class RequestBudget:
    """Per-source request counter shared by every page fetch of one search."""

    limit: float = math.inf
    count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.count >= self.limit

    def spend(self) -> None:
        self.count += 1


@dataclass
class SearchContext:
    """What a source needs to know to run its part of a search."""

    criteria: FilterCriteria
    places: list[Place]
    bounding_box: Optional[BoundingBox] = None
    created_after: Optional[datetime] = None

    def __post_init__(self):
        self.created_after = ensure_aware(self.created_after)
