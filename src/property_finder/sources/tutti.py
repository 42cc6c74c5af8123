"""Source adapter for Tutti.ch real estate listings (GraphQL API)."""

import re
import unicodedata
from datetime import datetime
from typing import Optional

from property_finder.models.listing import Listing, SourceRef, ensure_aware
from property_finder.models.search import FilterBucket, Place
from property_finder.sources.base import SourceAdapter, SourcePage
from property_finder.utils.text import is_temporary_text

TUTTI_API_URL = "https://www.tutti.ch/api/v10/graphql"
TUTTI_BASE_URL = "https://www.tutti.ch"
PAGE_SIZE = 200

SEARCH_QUERY = """
query SearchListingsByConstraints($constraints: ListingSearchConstraints, $first: Int!, $offset: Int!) {
  searchListingsByQuery(constraints: $constraints, category: "realEstate") {
    listings(first: $first, offset: $offset, sort: TIMESTAMP, direction: DESCENDING) {
      totalCount
      edges {
        node {
          listingID
          title
          body
          timestamp
          formattedPrice
          thumbnail { normalRendition: rendition(width: 235, height: 167) { src } }
          images(first: 10) { rendition(width: 600) { src } }
          properties { ... on ListingPropertyDescription { label text } }
          address
          postcodeInformation { postcode locationName }
          coordinates { latitude longitude }
          seoInformation { deSlug: slug(language: DE) }
        }
      }
    }
  }
}"""


def format_locality(place_name: str) -> str:
    """'Zürich (ZH)' -> 'geo-city-zurich'."""
    name = place_name.lower().split(",")[0]
    name = re.sub(r"\s*\([^)]*\)", "", name)
    # Drop umlauts to their base letter (ü -> u)
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    name = re.sub(r"\s+", "-", name.strip())
    name = re.sub(r"[^a-z0-9-]", "", name)
    return f"geo-city-{name}"


def parse_price(text: Optional[str]) -> int:
    """'CHF 2'450.–' -> 2450."""
    if not text:
        return 0
    digits = re.sub(r"[^0-9]", "", re.sub(r"['’]", "", text))
    return int(digits) if digits else 0


def parse_property(properties: list[dict], label: str) -> Optional[float]:
    for prop in properties or []:
        if prop.get("label") == label and prop.get("text"):
            match = re.search(r"(\d+(?:\.\d+)?)", prop["text"])
            return float(match.group(1)) if match else None
    return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


class TuttiSource(SourceAdapter):
    """Tutti.ch marketplace. Accepts a single locality per query."""

    name = "Tutti.ch"

    def headers(self) -> dict[str, str]:
        return {
            **super().headers(),
            "Content-Type": "application/json",
            "X-Tutti-Hash": "1e63962c-e049-4988-b64b-20b4306cc30c",
            "X-Tutti-Source": "web r1.0-2025-08-22-10-28",
            "X-Tutti-Client-Identifier": "web/1.0.0+env-live.git-786537f2",
        }

    def place_groups(self, places: list[Place]) -> list[list[Place]]:
        return [[place] for place in places]

    def build_variables(self, places: list[Place], bucket: FilterBucket, page: int) -> dict:
        is_unit = bucket.category == "unit"
        return {
            "first": PAGE_SIZE,
            "offset": page * PAGE_SIZE,
            "constraints": {
                "intervals": [
                    {
                        "key": "realEstateSize",
                        "min": bucket.size.min if is_unit else None,
                        "max": bucket.size.max if is_unit else None,
                    },
                    {
                        "key": "realEstateRooms",
                        "min": bucket.rooms.min if is_unit else None,
                        "max": bucket.rooms.max if is_unit else None,
                    },
                ],
                "locations": [
                    {
                        "key": "location",
                        "localities": [format_locality(p.name) for p in places],
                        "radius": 0,
                    }
                ],
                "prices": [
                    {
                        "key": "price",
                        "min": bucket.price.min,
                        "max": bucket.price.max,
                        "freeOnly": False,
                    }
                ],
                "strings": [
                    {"key": "listingType", "value": ["apartment", "house"] if is_unit else ["flatShare"]},
                    {"key": "priceType", "value": ["RENT"]},
                    {"key": "organic", "value": ["tutti"]},
                ],
            },
        }

    async def request_page(self, places: list[Place], bucket: FilterBucket, page: int) -> SourcePage:
        data = await self.send(
            "POST",
            TUTTI_API_URL,
            json={"query": SEARCH_QUERY, "variables": self.build_variables(places, bucket, page)},
        )
        listings = (((data or {}).get("data") or {}).get("searchListingsByQuery") or {}).get("listings")
        if not listings or not listings.get("edges"):
            return SourcePage()

        nodes = [edge["node"] for edge in listings["edges"]]
        fetched = page * PAGE_SIZE + len(nodes)
        return SourcePage(items=nodes, has_more=fetched < (listings.get("totalCount") or 0))

    def item_id(self, item: dict) -> str:
        return str(item.get("listingID"))

    def map_item(self, item: dict) -> Optional[Listing]:
        coordinates = item.get("coordinates")
        if not item.get("listingID") or not coordinates:
            return None

        price = parse_price(item.get("formattedPrice"))
        if price == 0:
            return None

        postcode = item.get("postcodeInformation") or {}
        locality = f"{postcode.get('postcode', '')} {postcode.get('locationName', '')}".strip()
        address = ", ".join(part for part in (item.get("address"), locality) if part)

        images = item.get("images") or []
        if images:
            image_urls = [img.get("rendition", {}).get("src") for img in images]
        else:
            image_urls = [((item.get("thumbnail") or {}).get("normalRendition") or {}).get("src")]
        image_urls = [url for url in image_urls if url]

        title = item.get("title") or ""
        text = "\n".join(part for part in (title, item.get("body")) if part)
        slug = (item.get("seoInformation") or {}).get("deSlug", "")
        properties = item.get("properties") or []

        return Listing(
            id=f"tutti-{item['listingID']}",
            providers=[
                SourceRef(name=self.name, url=f"{TUTTI_BASE_URL}/de/vi/{slug}/{item['listingID']}")
            ],
            title=title,
            description=text,
            price=price,
            rooms=parse_property(properties, "Zimmer") or 1,
            size=parse_property(properties, "Wohnfläche (m²)"),
            address=address,
            lat=coordinates["latitude"],
            lng=coordinates["longitude"],
            image_urls=image_urls,
            created_at=parse_timestamp(item.get("timestamp")),
            category="shared-room" if "wg" in title.lower() else "unit",
            rental_duration="temporary" if is_temporary_text(text) else "permanent",
        )
