"""Bounded-parallelism gate for fan-out generator calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """
    Counting gate: at most `limit` scheduled tasks run at once.

    Waiting tasks are admitted in submission order (asyncio.Semaphore wakes
    waiters FIFO). The slot is released whether the task returns or raises, so
    a failing task never starves the queue. Queued tasks are not cancellable
    through the limiter; callers stop scheduling new work instead.
    """

    def __init__(self, limit: int = 4):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._waiting = 0

    @property
    def active(self) -> int:
        """Tasks currently holding a slot."""
        return self._active

    @property
    def waiting(self) -> int:
        """Tasks queued for a slot."""
        return self._waiting

    async def schedule(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run task once a slot is free.

        Args:
            task: Zero-argument callable returning an awaitable; it is only
                called after the slot is acquired so no work starts early.

        Returns:
            Whatever the task returns

        Raises:
            Whatever the task raises
        """
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._active += 1
        try:
            return await task()
        finally:
            self._active -= 1
            self._semaphore.release()
