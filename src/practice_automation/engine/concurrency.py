"""Bounded worker pool with deterministic result ordering and cancellation."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag checked between items."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PoolResult(Generic[R]):
    """Outcome of :func:`run_bounded`.

    ``results`` holds one entry per attempted item, in input order.
    """

    def __init__(self, results: list[R], attempted: int, total: int, cancelled: bool):
        self.results = results
        self.attempted = attempted
        self.total = total
        self.cancelled = cancelled


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrency: int = 1,
    cancel_token: CancellationToken | None = None,
) -> PoolResult[R]:
    """Run ``worker`` over ``items`` with at most ``max_concurrency`` in flight.

    Items are handed out in input order. Once the token is cancelled no further
    item is started; items already running finish normally. ``worker`` must not
    raise: convert failures into result values.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    completed: dict[int, R] = {}

    async def _drain() -> None:
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                return
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            completed[index] = await worker(item)

    workers = min(max_concurrency, len(items)) or 1
    await asyncio.gather(*(_drain() for _ in range(workers)))

    ordered = [completed[index] for index in sorted(completed)]
    cancelled = cancel_token is not None and cancel_token.cancelled and len(completed) < len(items)
    return PoolResult(ordered, attempted=len(completed), total=len(items), cancelled=cancelled)
