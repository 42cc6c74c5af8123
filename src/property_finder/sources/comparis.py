"""Source adapter for Comparis (mobile app JSON API)."""

import json
import random
import re
import uuid
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from property_finder.errors import SourceRequestError
from property_finder.models.listing import Listing, SourceRef
from property_finder.models.search import FilterBucket, FilterCriteria, Place
from property_finder.search.filters import matches_advanced_filters, matches_bucket
from property_finder.sources.base import SourceAdapter, SourcePage
from property_finder.utils.text import is_temporary_text

RESULT_LIST_URL = "https://en.comparis.ch/immobilien/api/mobile/resultlist"
DETAIL_URL = "https://www.comparis.ch/immobilien/marktplatz/details/show/{ad_id}"

ANDROID_MODELS = ["M2012K11AG", "SM-G991B", "SM-A525F", "Pixel 6", "Pixel 7 Pro"]

# RootPropertyTypes: apartment, furnished apartment, house, multi-family house
UNIT_PROPERTY_TYPES = [1, 2, 4, 7]
SHARED_ROOM_PROPERTY_TYPE = 3

DEAL_TYPE_RENT = 10
SORT_BY_PUBLICATION_DATE = 3

SWISS_TZ = ZoneInfo("Europe/Zurich")
DATE_RE = re.compile(r"(\d+)")


def parse_change_date(value: Optional[str]) -> Optional[datetime]:
    """Parse 'dd.MM.yyyy HH:mm:ss' in Swiss local time."""
    if not value:
        return None
    parts = [int(p) for p in DATE_RE.findall(value)]
    if len(parts) < 5:
        return None
    day, month, year, hour, minute = parts[:5]
    second = parts[5] if len(parts) > 5 else 0
    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=SWISS_TZ)
    except ValueError:
        return None


def build_search_criteria(places: list[Place], bucket: FilterBucket) -> dict:
    criteria = {
        "DealType": DEAL_TYPE_RENT,
        "SearchOrderKey": SORT_BY_PUBLICATION_DATE,
        "SearchType": "LocationStringSearch",
        "SearchTrigger": "SearchButtonClick",
        "LocationSearchString": ", ".join(p.name for p in places),
    }
    if bucket.price.min is not None:
        criteria["PriceFrom"] = bucket.price.min
    if bucket.price.max is not None:
        criteria["PriceTo"] = bucket.price.max

    if bucket.category == "unit":
        if bucket.rooms.min is not None:
            criteria["RoomsFrom"] = bucket.rooms.min
        if bucket.rooms.max is not None:
            criteria["RoomsTo"] = bucket.rooms.max
        if bucket.size.min is not None:
            criteria["LivingSpaceFrom"] = bucket.size.min
        if bucket.size.max is not None:
            criteria["LivingSpaceTo"] = bucket.size.max
        criteria["RootPropertyTypes"] = UNIT_PROPERTY_TYPES
    else:
        criteria["RootPropertyTypes"] = [SHARED_ROOM_PROPERTY_TYPE]
    return criteria


class ComparisSource(SourceAdapter):
    """Comparis property marketplace. All places go into one location string."""

    name = "Comparis"

    def headers(self) -> dict[str, str]:
        return {
            "deviceapplicationguid": str(uuid.uuid4()),
            "bundlename": "ch.comparis.immoapp",
            "bundleversion": "9.12.1",
            "platform": "Android",
            "platformversion": "15",
            "device": "Android",
            "model": random.choice(ANDROID_MODELS),
            "accept": "application/vnd.comparis.immobilien.v2+json",
            "content-type": "application/json",
            "user-agent": (
                "Mozilla/5.0 (Linux; Android 15; M2012K11AG Build/BP1A.250505.005; wv) "
                "AppleWebKit/537.36 (KHTML, like Gecko) Version/4.0 Chrome/139.0.7258.143 "
                "Mobile Safari/537.36 [comparis Property Android/9.12.1]"
            ),
        }

    def place_groups(self, places: list[Place]) -> list[list[Place]]:
        return [places]

    def matches(self, listing: Listing, criteria: FilterCriteria, bucket: FilterBucket) -> bool:
        # The API does not filter roommates, so the bucket is checked again here
        return matches_advanced_filters(listing, criteria) and matches_bucket(listing, bucket)

    async def request_page(self, places: list[Place], bucket: FilterBucket, page: int) -> SourcePage:
        request_object = {
            "Page": page,
            "SearchCriteria": build_search_criteria(places, bucket),
            "Header": {"Language": "en", "Locale": "en-GB"},
        }
        data = await self.send(
            "GET", RESULT_LIST_URL, params={"requestObject": json.dumps(request_object)}
        )

        if not isinstance(data, dict):
            return SourcePage()

        header = data.get("Header") or {}
        if header.get("StatusCode", 0) != 0:
            raise SourceRequestError(
                self.name,
                f"API status {header.get('StatusCode')} ({header.get('StatusMessage')}): "
                f"{header.get('DebugMessage')}",
                status=400,
            )

        ads = data.get("Ads") or []
        if not ads:
            return SourcePage()
        has_more = data.get("CurrentPage", 0) < data.get("TotalPages", 0) - 1
        return SourcePage(items=ads, has_more=has_more)

    def item_id(self, item: dict) -> str:
        return str(item.get("AdId"))

    def map_item(self, item: dict) -> Optional[Listing]:
        coordinates = item.get("GeoCoordinates")
        if not item.get("AdId") or not item.get("PriceValue") or not coordinates:
            return None

        title = item.get("ContactAdTitle") or ""
        image_urls = list(item.get("ImageUrls") or [])
        thumbnail = item.get("ThumbnailImageUrl")
        if thumbnail and thumbnail not in image_urls:
            image_urls.insert(0, thumbnail)

        address = f"{item.get('Street') or ''}, {item.get('Zip') or ''} {item.get('City') or ''}"

        return Listing(
            id=f"comparis-{item['AdId']}",
            providers=[SourceRef(name=self.name, url=DETAIL_URL.format(ad_id=item["AdId"]))],
            title=title,
            description=title,
            price=int(item["PriceValue"]),
            rooms=item.get("Rooms") or 1,
            size=item.get("Area"),
            address=address.strip(", "),
            lat=coordinates["Latitude"],
            lng=coordinates["Longitude"],
            image_urls=image_urls,
            created_at=parse_change_date(item.get("LastRelevantChangeDate")),
            category="shared-room"
            if item.get("RootPropertyTypeID") == SHARED_ROOM_PROPERTY_TYPE
            else "unit",
            rental_duration="temporary" if is_temporary_text(title) else "permanent",
        )
