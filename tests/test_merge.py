"""Tests for duplicate detection and merging."""

from datetime import datetime

from conftest import make_listing, utc

from property_finder.search.merge import are_duplicates, merge_listings


def test_nearby_listing_with_similar_price_is_duplicate():
    a = make_listing("comparis-1", price=1500)
    b = make_listing("tutti-1", source="Tutti.ch", price=1520, lat=47.37695, lng=8.54175)
    assert are_duplicates(a, b)
    assert are_duplicates(b, a)


def test_listings_without_coordinates_are_never_duplicates():
    a = make_listing("a", lat=0, lng=0)
    b = make_listing("b", lat=0, lng=0)
    assert not are_duplicates(a, b)


def test_distance_over_75m_is_not_duplicate():
    a = make_listing("a")
    # ~111 m further north
    b = make_listing("b", lat=47.3769 + 0.001)
    assert not are_duplicates(a, b)


def test_price_threshold_is_symmetric():
    # 5% of 2000 is 100, 5% of 1900 is 95
    cheap = make_listing("a", price=1900)
    pricey = make_listing("b", price=2000)
    assert are_duplicates(cheap, pricey) == are_duplicates(pricey, cheap)


def test_price_threshold_has_a_floor_of_50():
    assert are_duplicates(make_listing("a", price=500), make_listing("b", price=550))
    assert not are_duplicates(make_listing("a", price=500), make_listing("b", price=551))


def test_different_rooms_are_not_duplicates():
    assert not are_duplicates(make_listing("a", rooms=2), make_listing("b", rooms=2.5))


def test_size_only_checked_when_both_known():
    assert are_duplicates(make_listing("a", size=60), make_listing("b"))
    assert are_duplicates(make_listing("a", size=60), make_listing("b", size=70))
    assert not are_duplicates(make_listing("a", size=60), make_listing("b", size=71))


def test_merge_prefers_listing_with_more_images():
    a = make_listing("comparis-1", image_urls=["x"])
    b = make_listing("tutti-1", source="Tutti.ch", title="Better", image_urls=["y", "z"])

    merged = merge_listings(a, b)

    assert merged.title == "Better"
    assert merged.id == "comparis-1+tutti-1"
    assert [p.name for p in merged.providers] == ["Tutti.ch", "Comparis"]


def test_merge_keeps_first_argument_on_image_tie():
    a = make_listing("b-1", title="First")
    b = make_listing("a-1", source="Other", title="Second")

    merged = merge_listings(a, b)

    assert merged.title == "First"
    assert merged.id == "a-1+b-1"


def test_merge_backfills_size_and_takes_earliest_date():
    a = make_listing("a", created_at=utc(2025, 3, 2))
    b = make_listing("b", source="Other", size=55, created_at=utc(2025, 3, 1))

    merged = merge_listings(a, b)

    assert merged.size == 55
    assert merged.created_at == utc(2025, 3, 1)


def test_naive_dates_are_treated_as_utc():
    a = make_listing("a", created_at=datetime(2025, 1, 1))
    b = make_listing("b", source="Other", created_at=utc(2025, 1, 2))

    merged = merge_listings(b, a)

    assert a.created_at == utc(2025, 1, 1)
    assert merged.created_at == utc(2025, 1, 1)


def test_merge_fills_missing_commute_times_only():
    a = make_listing("a", commute_times={"bike": 10})
    b = make_listing("b", source="Other", commute_times={"bike": 30, "public": 20})

    merged = merge_listings(a, b)

    assert merged.commute_times == {"bike": 10, "public": 20}


def test_merge_is_idempotent():
    a = make_listing("comparis-1", image_urls=["x"])
    b = make_listing("tutti-1", source="Tutti.ch")

    once = merge_listings(a, b)
    twice = merge_listings(once, b)

    assert twice == once
    assert merge_listings(once, once) == once
