"""Tests for the exclusion store."""

from conftest import make_listing

from property_finder.storage.exclusions import SQLiteExclusionStore


def test_add_and_list_newest_first():
    store = SQLiteExclusionStore(":memory:")
    store.add(make_listing("a"))
    store.add(make_listing("b"))

    assert [l.id for l in store.all()] == ["b", "a"]
    assert len(store) == 2


def test_commute_times_are_not_stored():
    store = SQLiteExclusionStore(":memory:")
    store.add(make_listing("a", commute_times={"bike": 10}))

    [stored] = store.all()
    assert stored.commute_times == {}
    assert stored.price == 1500


def test_adding_twice_keeps_one_entry():
    store = SQLiteExclusionStore(":memory:")
    store.add(make_listing("a"))
    store.add(make_listing("a", title="Updated"))

    assert [l.title for l in store.all()] == ["Updated"]


def test_remove():
    store = SQLiteExclusionStore(":memory:")
    store.add(make_listing("a"))

    assert store.remove("a") is True
    assert store.remove("a") is False
    assert store.all() == []


def test_subscribers_see_every_change():
    store = SQLiteExclusionStore(":memory:")
    seen = []

    unsubscribe = store.subscribe(lambda listings: seen.append([l.id for l in listings]))
    store.add(make_listing("a"))
    store.remove("a")
    unsubscribe()
    store.add(make_listing("b"))

    assert seen == [[], ["a"], []]


def test_exclusions_persist_on_disk(tmp_path):
    path = tmp_path / "nested" / "exclusions.db"
    with SQLiteExclusionStore(path) as store:
        store.add(make_listing("comparis-1+tutti-2"))

    with SQLiteExclusionStore(path) as store:
        assert [l.id for l in store.all()] == ["comparis-1+tutti-2"]
