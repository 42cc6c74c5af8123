"""Base source adapter that all listing sources inherit from."""

import abc
import importlib
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import httpx
from fake_useragent import UserAgent
from rich.console import Console
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from property_finder.config.settings import MAX_RETRIES, SHORT_CACHE_TTL_MS, TIMEOUT
from property_finder.errors import BudgetExhaustedError, SourceRequestError
from property_finder.models.listing import Listing
from property_finder.models.search import (
    FilterBucket,
    FilterCriteria,
    Place,
    RequestBudget,
    SearchContext,
)
from property_finder.search.filters import matches_advanced_filters
from property_finder.services.rate_limiter import RateLimiter
from property_finder.storage.cache import CacheStore

console = Console()
ua = UserAgent()


@dataclass
class SourcePage:
    """One page of raw items as returned by a source."""

    items: list[dict] = field(default_factory=list)
    has_more: bool = False


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, SourceRequestError) and error.transient


class SourceAdapter(abc.ABC):
    """Abstract base for all listing sources.

    Subclasses describe how to query one page and how to map a raw item;
    this class handles budgets, pacing, retries, page caching, de-duplication
    within a search and the created-after cutoff.
    """

    name: str = "unknown"

    def __init__(
        self,
        cache: CacheStore,
        http: Optional[httpx.AsyncClient] = None,
        requests_per_second: float = 1.0,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = MAX_RETRIES,
        retry_wait=None,
    ):
        self.cache = cache
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=TIMEOUT, follow_redirects=True)
        self.rate_limiter = rate_limiter or RateLimiter(requests_per_second)
        self.max_retries = max_retries
        self.retry_wait = retry_wait or wait_exponential(min=1, max=10)

    # === Source specific ===

    @abc.abstractmethod
    def place_groups(self, places: list[Place]) -> list[list[Place]]:
        """Split the candidate places into the groups queried together."""
        ...

    @abc.abstractmethod
    async def request_page(self, places: list[Place], bucket: FilterBucket, page: int) -> SourcePage:
        """Perform the network round-trip for one page."""
        ...

    @abc.abstractmethod
    def item_id(self, item: dict) -> str:
        ...

    @abc.abstractmethod
    def map_item(self, item: dict) -> Optional[Listing]:
        """Map a raw item to a Listing, or None if it lacks required data."""
        ...

    def matches(self, listing: Listing, criteria: FilterCriteria, bucket: FilterBucket) -> bool:
        """Filters applied after mapping. The query itself covers the bucket."""
        return matches_advanced_filters(listing, criteria)

    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": ua.random,
            "Accept-Language": "de-CH,de;q=0.9,en;q=0.8",
        }

    # === HTTP ===

    async def send(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request through the rate limiter and return the decoded JSON.

        Raises SourceRequestError on network failures and HTTP errors.
        """
        kwargs.setdefault("headers", self.headers())
        try:
            resp = await self.rate_limiter.schedule(lambda: self.http.request(method, url, **kwargs))
        except httpx.HTTPError as e:
            raise SourceRequestError(self.name, f"request failed: {e}") from e

        if resp.status_code >= 400:
            raise SourceRequestError(
                self.name, f"HTTP {resp.status_code}: {resp.text[:200]}", status=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise SourceRequestError(self.name, f"invalid JSON: {e}", status=resp.status_code) from e

    # === Paging ===

    def page_cache_key(self, places: list[Place], bucket: FilterBucket, page: int) -> str:
        place_names = ",".join(p.name for p in places)
        return f"source-page:{self.name}:{place_names}:{bucket.cache_fragment()}:{page}"

    async def fetch_page(
        self, places: list[Place], bucket: FilterBucket, page: int, budget: RequestBudget
    ) -> SourcePage:
        """Return one page, from cache when possible.

        Cached pages do not count against the budget. Every network attempt
        does, and is refused with BudgetExhaustedError once the budget is spent.
        """
        key = self.page_cache_key(places, bucket, page)
        cached = await self.cache.get(key)
        if cached is not None:
            return SourcePage(**cached)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if budget.exhausted:
                    raise BudgetExhaustedError(self.name, budget.limit)
                budget.spend()
                result = await self.request_page(places, bucket, page)

        if result.items:
            await self.cache.set(
                key, {"items": result.items, "has_more": result.has_more}, SHORT_CACHE_TTL_MS
            )
        return result

    async def _fetch_group(
        self,
        places: list[Place],
        bucket: FilterBucket,
        context: SearchContext,
        budget: RequestBudget,
        seen_ids: set[str],
    ) -> AsyncIterator[list[Listing]]:
        label = ", ".join(p.name for p in places) or "all places"
        page = 0
        while True:
            try:
                result = await self.fetch_page(places, bucket, page, budget)
            except SourceRequestError as e:
                console.print(f"[yellow]{self.name}: {e} (skipping {label}, bucket {bucket.id})[/]")
                return

            new_items = []
            for item in result.items:
                item_id = self.item_id(item)
                if item_id in seen_ids:
                    continue
                seen_ids.add(item_id)
                new_items.append(item)

            listings = []
            for item in new_items:
                listing = self.map_item(item)
                if listing is not None and self.matches(listing, context.criteria, bucket):
                    listings.append(listing)

            if context.created_after and listings:
                recent = [
                    l for l in listings if l.created_at and l.created_at >= context.created_after
                ]
                if not recent:
                    # Pages are newest first, so everything after this is older
                    return
                listings = recent

            if listings:
                yield listings

            if not result.has_more:
                return
            page += 1

    async def fetch_listings(
        self, context: SearchContext, budget: RequestBudget
    ) -> AsyncIterator[list[Listing]]:
        """Yield batches of listings for every place group and bucket.

        Ends quietly when the request budget runs out.
        """
        buckets = context.criteria.buckets or [FilterBucket()]
        seen_ids: set[str] = set()

        try:
            for places in self.place_groups(context.places):
                for bucket in buckets:
                    async for listings in self._fetch_group(places, bucket, context, budget, seen_ids):
                        yield listings
        except BudgetExhaustedError as e:
            console.print(f"[yellow]{e}. Skipping remaining places and buckets.[/]")

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()


def load_source_class(dotted_path: str) -> type[SourceAdapter]:
    """Dynamically load a source adapter class from its dotted path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
