"""Fan-in of several async listing streams into one."""

import asyncio
from typing import AsyncIterator, Sequence, TypeVar

from rich.console import Console

console = Console()

T = TypeVar("T")


async def _next(iterator: AsyncIterator[list[T]]) -> list[T]:
    return await iterator.__anext__()


async def merge_streams(streams: Sequence[AsyncIterator[list[T]]]) -> AsyncIterator[list[T]]:
    """Yield batches from all streams in the order they become available.

    Empty batches are skipped. A stream that raises is logged and dropped
    while the others keep going. Closing the merged stream cancels the
    reads still pending.
    """
    pending: dict[asyncio.Task, int] = {}
    iterators = [aiter(s) for s in streams]
    for index, iterator in enumerate(iterators):
        pending[asyncio.create_task(_next(iterator))] = index

    try:
        while pending:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                index = pending.pop(task)
                try:
                    batch = task.result()
                except StopAsyncIteration:
                    continue
                except Exception as e:
                    console.print(f"[red]Error in source stream {index}: {e}[/]")
                    continue

                pending[asyncio.create_task(_next(iterators[index]))] = index
                if batch:
                    yield batch
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
