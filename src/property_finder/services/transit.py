"""Public transport travel times from transport.opendata.ch."""

import re
from datetime import date, timedelta
from typing import Callable, Optional

import httpx
from rich.console import Console
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from property_finder.config.settings import (
    LONG_CACHE_TTL_MS,
    MAX_RETRIES,
    TIMEOUT,
    TRANSPORT_API_URL,
    TRANSPORT_BACKOFF_BASE,
    TRANSPORT_BACKOFF_JITTER,
    TRANSPORT_REQUESTS_PER_SECOND,
)
from property_finder.errors import RateLimitedError
from property_finder.models.search import Coordinates
from property_finder.services.rate_limiter import RateLimiter
from property_finder.storage.cache import CacheStore

console = Console()

# "00d00:23:00" -> days, hours, minutes, seconds
DURATION_RE = re.compile(r"(\d+)d(\d+):(\d+):(\d+)")


def parse_duration(text: str) -> Optional[int]:
    """Parse a connection duration into whole minutes."""
    match = DURATION_RE.match(text or "")
    if not match:
        return None
    days, hours, minutes, _ = (int(g) for g in match.groups())
    return days * 24 * 60 + hours * 60 + minutes


def next_monday(today: Optional[date] = None) -> date:
    """Today if it is a Monday, else the coming Monday."""
    today = today or date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7)


class TransitClient:
    """Shortest public transport connection for a typical Monday morning commute."""

    source = "transport.opendata.ch"

    def __init__(
        self,
        cache: CacheStore,
        http: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = TRANSPORT_BACKOFF_BASE,
        backoff_jitter: float = TRANSPORT_BACKOFF_JITTER,
        today: Callable[[], date] = date.today,
    ):
        self.cache = cache
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=TIMEOUT)
        self.rate_limiter = rate_limiter or RateLimiter(TRANSPORT_REQUESTS_PER_SECOND)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self._today = today

    async def _request(self, params: dict) -> httpx.Response:
        resp = await self.rate_limiter.schedule(
            lambda: self.http.get(TRANSPORT_API_URL, params=params)
        )
        if resp.status_code == 429:
            console.print("[yellow]Rate limit hit for transport.opendata.ch, backing off[/]")
            raise RateLimitedError(self.source)
        return resp

    async def _request_with_backoff(self, params: dict) -> httpx.Response:
        """Retry HTTP 429 up to `max_retries` times with exponential backoff and jitter."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_base, min=0)
            + wait_random(0, self.backoff_jitter),
            retry=retry_if_exception_type(RateLimitedError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request(params)

    async def public_transport_time(
        self, origin: Coordinates, destination: Coordinates
    ) -> Optional[int]:
        """Minutes of the shortest of up to 10 connections, or None."""

        async def fetch() -> Optional[int]:
            params = {
                "from": f"{origin.lat},{origin.lng}",
                "to": f"{destination.lat},{destination.lng}",
                "date": next_monday(self._today()).isoformat(),
                "time": "08:00",
                "limit": 10,
            }
            try:
                resp = await self._request_with_backoff(params)
            except RateLimitedError:
                console.print("[red]transport.opendata.ch still rate limited, giving up[/]")
                return None
            except httpx.HTTPError as e:
                console.print(f"[yellow]Public transport request failed: {e}[/]")
                return None

            if resp.status_code != 200:
                console.print(f"[yellow]Public transport API error: HTTP {resp.status_code}[/]")
                return None

            try:
                connections = resp.json().get("connections") or []
            except ValueError as e:
                console.print(f"[yellow]Public transport API returned invalid JSON: {e}[/]")
                return None

            durations = [parse_duration(c.get("duration", "")) for c in connections]
            durations = [d for d in durations if d is not None]
            if not durations:
                console.print("[dim]Public transport time could not be determined[/]")
                return None
            return min(durations)

        key = f"public-transport:{origin.lat},{origin.lng}-{destination.lat},{destination.lng}"
        return await self.cache.get_or_set(key, fetch, LONG_CACHE_TTL_MS)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()
