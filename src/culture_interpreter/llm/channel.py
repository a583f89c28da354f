"""Bounded producer/consumer channel for streamed provider output."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")

_CLOSED = object()


class _Failure:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class StreamChannel(Generic[T]):
    """Runs a producer task that sends items into a bounded queue.

    Iterating the channel yields items in send order until the producer
    finishes. A producer exception is re-raised to the consumer after every
    item sent before it. Leaving the iteration early cancels the producer.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def send(self, item: T) -> None:
        await self._queue.put(item)

    async def _run(self, producer: Callable[["StreamChannel[T]"], Awaitable[None]]) -> None:
        try:
            await producer(self)
        except Exception as exc:
            await self._queue.put(_Failure(exc))
            return
        await self._queue.put(_CLOSED)

    async def stream(self, producer: Callable[["StreamChannel[T]"], Awaitable[None]]) -> AsyncIterator[T]:
        task = asyncio.ensure_future(self._run(producer))
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSED:
                    break
                if isinstance(item, _Failure):
                    raise item.exc
                yield item
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
