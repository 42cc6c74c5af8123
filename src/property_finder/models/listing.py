"""Data models for rental listings."""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

TravelMode = Literal["public", "bike", "car", "walk"]
Category = Literal["unit", "shared-room"]
RentalDuration = Literal["permanent", "temporary"]
GenderPreference = Literal["any", "male", "female"]

ID_SEPARATOR = "+"


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SourceRef(BaseModel):
    """Where a listing was found."""

    name: str
    url: str


class Listing(BaseModel):
    """Normalized rental listing produced by a source adapter."""

    # === Identifiers ===
    id: str = Field(description="Source id, or sorted '+'-joined ids after a merge")
    providers: list[SourceRef] = Field(min_length=1)

    # === Core details ===
    title: str = ""
    description: str = ""
    price: int = Field(description="Monthly rent in CHF")
    rooms: float = 1
    size: Optional[float] = Field(None, description="Living area in m²")
    address: str = ""
    lat: float = 0.0
    lng: float = 0.0
    image_urls: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    # === Advanced filtering ===
    category: Category = "unit"
    roommates: Optional[int] = None
    rental_duration: RentalDuration = "permanent"
    gender_preference: GenderPreference = "any"

    # === Commute (computed) ===
    # Absent key = not enriched yet, None = looked up but unknown
    commute_times: dict[TravelMode, Optional[int]] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def _created_at_is_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)

    @property
    def image_url(self) -> str:
        return self.image_urls[0] if self.image_urls else ""

    @property
    def component_ids(self) -> list[str]:
        return self.id.split(ID_SEPARATOR)

    @property
    def has_coordinates(self) -> bool:
        return bool(self.lat and self.lng)
