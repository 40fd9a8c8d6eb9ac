"""
Bounded-concurrency helpers.
"""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

from fastapi.concurrency import run_in_threadpool

from bookshelf.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def batch_map(
    items: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    batch_size: int,
    delay: float = 0.0,
) -> list[R]:
    """
    Apply ``func`` to ``items`` in fixed-size batches.

    Items within a batch run concurrently; the next batch starts only after
    the whole batch has finished and ``delay`` seconds have passed. No delay
    follows the last batch. Results keep the input order. An exception from
    ``func`` propagates; callers that want best-effort behaviour must catch
    inside ``func``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: list[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(func(item) for item in batch)))

        if delay > 0 and start + batch_size < len(items):
            await asyncio.sleep(delay)

    return results


async def run_blocking(func: Callable[..., R], *args, **kwargs) -> R:
    """
    Run a blocking call through ``run_in_threadpool`` and let it finish.

    A worker thread cannot be interrupted, so if the calling task is cancelled
    while the call is running, the cancellation is held back until the thread
    has returned and then re-raised. The caller never touches shared state
    (such as a database session) while the thread still uses it.
    """
    task = asyncio.ensure_future(run_in_threadpool(func, *args, **kwargs))
    cancelled = False
    while not task.done():
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            cancelled = True

    if cancelled:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"{func.__name__} failed after cancellation: {task.exception()}")
        raise asyncio.CancelledError()
    return task.result()
