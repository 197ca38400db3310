"""
Minimal observable values for asyncio.

An Observable holds a current value and fans every new value out to its
subscribers. Subscribing always yields the current value first, so a late
subscriber still sees the latest snapshot.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Generic, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
A = TypeVar("A")
B = TypeVar("B")

_MISSING = object()


class Observable(Generic[T]):
    """
    A value that can be watched for changes.

    emit() must be called from the event loop thread.
    """

    def __init__(self, initial: T, distinct_until_changed: bool = False):
        """
        Args:
            initial: Value handed to every new subscriber first
            distinct_until_changed: Drop emissions equal to the current value
        """
        self._value = initial
        self._distinct = distinct_until_changed
        self._queues: set[asyncio.Queue] = set()

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def emit(self, value: T):
        if self._distinct and value == self._value:
            return
        self._value = value
        for queue in list(self._queues):
            queue.put_nowait(value)

    async def subscribe(self) -> AsyncIterator[T]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        try:
            yield self._value
            while True:
                yield await queue.get()
        finally:
            self._queues.discard(queue)


class _Failure:
    def __init__(self, error: Exception):
        self.error = error


async def combine_latest(
    first: Observable[A], second: Observable[B]
) -> AsyncIterator[Tuple[A, B]]:
    """
    Merge two observables, yielding (latest_first, latest_second) each time
    either side emits once both have produced a value.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def pump(index: int, source: Observable[Any]):
        try:
            async for value in source.subscribe():
                await queue.put((index, value))
        except Exception as ex:
            await queue.put((index, _Failure(ex)))

    tasks = [
        asyncio.create_task(pump(0, first)),
        asyncio.create_task(pump(1, second)),
    ]
    latest = [_MISSING, _MISSING]
    try:
        while True:
            index, value = await queue.get()
            if isinstance(value, _Failure):
                raise value.error
            latest[index] = value
            if any(v is _MISSING for v in latest):
                continue
            yield (latest[0], latest[1])
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
