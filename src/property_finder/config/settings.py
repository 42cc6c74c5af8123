"""Configuration for listing sources, geo services and search defaults."""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# === GEO / GRID CONFIG ===
# Cell size in degrees. ~0.0005 degrees is roughly 55 meters.
DEDUP_CELL_SIZE = 0.0005
# Cell size in degrees. ~0.002 degrees is roughly 222 meters.
TRAVEL_TIME_CELL_SIZE = 0.002

# Duplicate heuristics
DUPLICATE_MAX_DISTANCE_KM = 0.075
DUPLICATE_PRICE_RATIO = 0.05
DUPLICATE_MIN_PRICE_DIFF = 50
DUPLICATE_MAX_SIZE_DIFF = 10  # m²

# Padding added around the merged isochrone bounding box
SEARCH_AREA_PADDING_KM = 5
NEARBY_PLACES_RADIUS_KM = 15
NEARBY_PLACES_LIMIT = 10
DEFAULT_PLACE = "Zürich"

# Listings processed per chunk by the orchestrator
ORCHESTRATOR_CHUNK_SIZE = 10

TRAVEL_MODES = ("public", "bike", "car", "walk")

# === CACHE CONFIG ===
LONG_CACHE_TTL_MS = 7 * 24 * 60 * 60 * 1000  # 7 days
SHORT_CACHE_TTL_MS = 10 * 60 * 1000  # 10 minutes
CACHE_CLEANUP_INTERVAL = 60 * 60  # seconds

# === HTTP CONFIG ===
MAX_RETRIES = 3
TIMEOUT = 30
GEOCODE_TIMEOUT = 10
OVERPASS_TIMEOUT = 45

# === EXTERNAL APIS ===
GEOAPIFY_API_KEY = os.getenv("GEOAPIFY_API_KEY", "")
GEOAPIFY_BASE_URL = "https://api.geoapify.com/v1"
GEOAPIFY_REQUESTS_PER_SECOND = 5
GEOCODE_COUNTRY_CODE = "ch"

# Geocoding goes through OpenStreetMap Nominatim (max 1 request per second)
NOMINATIM_USER_AGENT = "property_finder"
NOMINATIM_REQUESTS_PER_SECOND = 1

# Public Overpass endpoints, tried in order
OVERPASS_ENDPOINTS = [
    "https://overpass-api.de/api/interpreter",
    "https://lz4.overpass-api.de/api/interpreter",
    "https://z.overpass-api.de/api/interpreter",
]

TRANSPORT_API_URL = "https://transport.opendata.ch/v1/connections"
TRANSPORT_REQUESTS_PER_SECOND = 10
TRANSPORT_BACKOFF_BASE = 0.5  # seconds
TRANSPORT_BACKOFF_JITTER = 0.25  # seconds

# === PATHS ===
DATA_DIR = Path(os.getenv("PROPERTY_FINDER_DATA_DIR", "data"))
CACHE_DB_PATH = DATA_DIR / "cache.db"
EXCLUSIONS_DB_PATH = DATA_DIR / "exclusions.db"
# Results of the last CLI search, used to look up listings by id
LAST_RESULTS_PATH = DATA_DIR / "last_results.json"


@dataclass
class SourceSite:
    """A listing source that can be queried."""

    name: str
    adapter_class: str  # dotted path to adapter class
    requests_per_second: float = 1.0
    enabled: bool = True
    notes: str = ""


SOURCES: list[SourceSite] = [
    SourceSite(
        name="Tutti.ch",
        adapter_class="property_finder.sources.tutti.TuttiSource",
        requests_per_second=0.1,
        notes="GraphQL marketplace API. Very strict rate limits, one place per query.",
    ),
    SourceSite(
        name="Comparis",
        adapter_class="property_finder.sources.comparis.ComparisSource",
        requests_per_second=1,
        notes="Mobile app JSON API. Accepts all places in one location string.",
    ),
]


def get_enabled_sources(filter_names: list[str] | None = None) -> list[SourceSite]:
    """Return enabled sources, optionally filtered by name (case-insensitive)."""
    sources = [s for s in SOURCES if s.enabled]
    if filter_names:
        names = {n.lower() for n in filter_names}
        sources = [s for s in sources if s.name.lower() in names]
    return sources


@dataclass
class SearchConfig:
    """Operational knobs for one search."""

    enabled_sources: list[str] = field(default_factory=lambda: [s.name for s in SOURCES])
    # math.inf means no per-source ceiling
    request_limit: float = math.inf
    query_public_transport: bool = True


def _get_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() == "true"


def _get_int(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_list(value: Optional[str], default: list[str]) -> list[str]:
    if value is None:
        return default
    return [s.strip() for s in value.split(",") if s.strip()]


def load_search_config(env: Optional[dict] = None) -> SearchConfig:
    """Build a SearchConfig from environment variables."""
    env = os.environ if env is None else env
    return SearchConfig(
        enabled_sources=_get_list(
            env.get("SEARCH_SOURCES"), [s.name for s in get_enabled_sources()]
        ),
        request_limit=_get_int(env.get("SEARCH_REQUEST_LIMIT"), math.inf),
        query_public_transport=_get_bool(env.get("SEARCH_QUERY_PUBLIC_TRANSPORT"), True),
    )
