"""
Bounded concurrency for I/O-bound batch work.
"""

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> List[R]:
    """
    Run worker over every item with at most `concurrency` calls in flight.

    Returns only after every call has finished, with results in input order.
    Workers are expected to report per-item failures in their result; an
    exception raised by a worker propagates and fails the whole batch.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def bounded(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(bounded(item) for item in items)))
