"""Tests for the public transport client."""

from datetime import date

import httpx
import pytest

from property_finder.models.search import Coordinates
from property_finder.services.rate_limiter import RateLimiter
from property_finder.services.transit import TransitClient, next_monday, parse_duration

ORIGIN = Coordinates(lat=47.39, lng=8.51)
DESTINATION = Coordinates(lat=47.3769, lng=8.5417)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("00d00:23:00", 23),
        ("00d01:05:30", 65),
        ("01d00:10:00", 1450),
        ("", None),
        (None, None),
        ("23 min", None),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


def test_next_monday():
    assert next_monday(date(2025, 3, 12)) == date(2025, 3, 17)
    assert next_monday(date(2025, 3, 17)) == date(2025, 3, 17)
    assert next_monday(date(2025, 3, 16)) == date(2025, 3, 17)


def make_client(cache, handler, **kwargs) -> tuple[TransitClient, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = TransitClient(
        cache,
        http=http,
        rate_limiter=RateLimiter(1000),
        backoff_base=0,
        backoff_jitter=0,
        today=lambda: date(2025, 3, 12),
        **kwargs,
    )
    return client, http


def connections(*durations) -> dict:
    return {"connections": [{"duration": d} for d in durations]}


async def test_shortest_connection_for_monday_morning(cache):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=connections("00d00:31:00", "00d00:23:00", None))

    client, http = make_client(cache, handler)

    assert await client.public_transport_time(ORIGIN, DESTINATION) == 23

    params = requests[0].url.params
    assert params["from"] == "47.39,8.51"
    assert params["date"] == "2025-03-17"
    assert params["time"] == "08:00"
    assert params["limit"] == "10"
    await http.aclose()


async def test_result_is_cached(cache):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=connections("00d00:23:00"))

    client, http = make_client(cache, handler)
    await client.public_transport_time(ORIGIN, DESTINATION)
    await client.public_transport_time(ORIGIN, DESTINATION)

    assert len(calls) == 1
    await http.aclose()


async def test_rate_limit_is_retried_with_backoff(cache):
    statuses = iter([429, 429, 200])

    def handler(request):
        status = next(statuses)
        if status == 429:
            return httpx.Response(429)
        return httpx.Response(200, json=connections("00d00:40:00"))

    client, http = make_client(cache, handler)

    assert await client.public_transport_time(ORIGIN, DESTINATION) == 40
    await http.aclose()


async def test_gives_up_after_max_retries(cache):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    client, http = make_client(cache, handler, max_retries=2)

    assert await client.public_transport_time(ORIGIN, DESTINATION) is None
    assert len(calls) == 3
    await http.aclose()


async def test_unknown_results_are_not_cached(cache):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"connections": []})

    client, http = make_client(cache, handler)

    assert await client.public_transport_time(ORIGIN, DESTINATION) is None
    assert await client.public_transport_time(ORIGIN, DESTINATION) is None
    assert len(calls) == 2
    await http.aclose()


async def test_server_error_is_not_retried(cache):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client, http = make_client(cache, handler)

    assert await client.public_transport_time(ORIGIN, DESTINATION) is None
    assert len(calls) == 1
    await http.aclose()
