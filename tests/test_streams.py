"""Tests for the stream merger."""

import asyncio

from property_finder.search.streams import merge_streams


async def numbered(source: str, count: int, delay: float = 0):
    for i in range(count):
        await asyncio.sleep(delay)
        yield [f"{source}-{i}"]


async def empty_batches():
    yield []
    yield ["real"]
    yield []


async def faulty():
    yield ["before-fault"]
    raise RuntimeError("source broke")


async def test_merges_all_batches_and_terminates():
    streams = [numbered("a", 3), numbered("b", 0), numbered("c", 2)]

    batches = [batch async for batch in merge_streams(streams)]

    assert len(batches) == 5
    assert sorted(item for batch in batches for item in batch) == ["a-0", "a-1", "a-2", "c-0", "c-1"]


async def test_keeps_per_stream_order():
    batches = [batch async for batch in merge_streams([numbered("a", 3), numbered("b", 3)])]

    a_items = [b[0] for b in batches if b[0].startswith("a")]
    assert a_items == ["a-0", "a-1", "a-2"]


async def test_skips_empty_batches():
    batches = [batch async for batch in merge_streams([empty_batches()])]
    assert batches == [["real"]]


async def test_faulty_stream_is_dropped():
    batches = [batch async for batch in merge_streams([faulty(), numbered("ok", 2, delay=0.01)])]

    items = sorted(item for batch in batches for item in batch)
    assert items == ["before-fault", "ok-0", "ok-1"]


async def test_faster_stream_is_not_held_back():
    batches = [batch async for batch in merge_streams([numbered("slow", 1, delay=0.2), numbered("fast", 2)])]

    assert batches[-1] == ["slow-0"]


async def test_closing_early_cancels_pending_reads():
    cancelled = asyncio.Event()

    async def hanging():
        try:
            await asyncio.sleep(10)
            yield ["never"]
        except asyncio.CancelledError:
            cancelled.set()
            raise

    merged = merge_streams([numbered("a", 1), hanging()])
    assert await merged.__anext__() == ["a-0"]
    await merged.aclose()

    assert cancelled.is_set()
