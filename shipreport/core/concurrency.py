"""
Bounded worker pool used for per-item upstream fetches.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from shipreport.core.constants import HISTORY_CONCURRENCY

T = TypeVar("T")
R = TypeVar("R")

_MISSING = object()


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    concurrency: int = HISTORY_CONCURRENCY,
    on_error: Optional[Callable[[T, Exception], None]] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> list[R]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` calls in flight.

    A fixed number of consumer tasks drain a queue of work items. Results are
    returned in input order. When ``on_error`` is given, an item whose worker
    raises is reported through it and left out of the results; otherwise the
    first failure cancels the remaining consumers and propagates.

    Args:
        items: Work items
        worker: Coroutine function applied to each item
        concurrency: Number of consumer tasks
        on_error: Per-item failure callback
        on_progress: Called with (handled, total) after every item

    Returns:
        Successful results, ordered like ``items``
    """
    total = len(items)
    if total == 0:
        return []

    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    results: list[object] = [_MISSING] * total
    handled = 0

    async def consume() -> None:
        nonlocal handled
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = await worker(item)
            except Exception as exc:
                if on_error is None:
                    raise
                on_error(item, exc)
            finally:
                handled += 1
                if on_progress is not None:
                    on_progress(handled, total)

    tasks = [asyncio.create_task(consume()) for _ in range(max(1, min(concurrency, total)))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return [result for result in results if result is not _MISSING]  # type: ignore[misc]
