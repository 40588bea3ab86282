"""Core pipeline primitives: channels, stage contexts and the Pipe base class."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import AsyncIterator, Coroutine
from typing import TYPE_CHECKING, Any, Deque, Generic, List, Optional, Set, TypeVar

if TYPE_CHECKING:
    from .collection import BatchPipeline, ConcurrentPipeline

T = TypeVar("T")
I = TypeVar("I")
O = TypeVar("O")

_BACKGROUND: Set["asyncio.Task[Any]"] = set()


def _spawn(coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
    """Start a coroutine as a task and keep a reference until it finishes."""
    task = asyncio.get_running_loop().create_task(coro)
    _BACKGROUND.add(task)
    task.add_done_callback(_BACKGROUND.discard)
    return task


class ChannelClosed(Exception):
    """Raised when a closed channel is sent to, or received from once drained."""


class Channel(Generic[T]):
    """An unbounded multi-producer, multi-consumer asynchronous channel.

    Producers register with :meth:`acquire` and deregister with
    :meth:`release`; the channel closes when the last one is released.
    Items already queued can still be received after the channel closes.
    """

    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._waiters: List["asyncio.Future[None]"] = []
        self._senders = 0
        self._closed = False

    def acquire(self) -> "Channel[T]":
        """Register one more sender and return the channel."""
        self._senders += 1
        return self

    def release(self) -> None:
        """Deregister a sender; the channel closes when none remain."""
        if self._senders <= 0:
            raise RuntimeError("release() called with no registered senders")
        self._senders -= 1
        if self._senders == 0:
            self.close()

    def close(self) -> None:
        """Close the channel; receivers drain what is queued, then stop."""
        self._closed = True
        self._wake()

    def send(self, item: T) -> None:
        """Queue an item for receivers."""
        if self._closed:
            raise ChannelClosed("channel is closed")
        self._items.append(item)
        self._wake()

    async def recv(self) -> T:
        """Wait for and return the next item."""
        while not self._items:
            if self._closed:
                raise ChannelClosed("channel is closed")
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
        return self._items.popleft()

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class Context:
    """The input and output channels one running stage works with.

    Creating a context registers it as a sender on its output channel.
    """

    def __init__(self, input_stream: Channel[Any], output_stream: Channel[Any]) -> None:
        self.input_stream = input_stream
        self.output_stream = output_stream.acquire()
        self._released = False

    async def input(self) -> Any:
        """Receive the next input item; raises ChannelClosed at the end."""
        return await self.input_stream.recv()

    async def output(self, data: Any) -> None:
        """Send an item downstream, ignoring a closed output."""
        try:
            self.output_stream.send(data)
        except ChannelClosed:
            pass

    async def _inputs(self) -> AsyncIterator[Any]:
        while True:
            try:
                item = await self.input()
            except ChannelClosed:
                return
            yield item

    def _finish(self) -> None:
        if not self._released:
            self._released = True
            self.output_stream.release()


class Pipe(ABC, Generic[I, O]):
    """A pipeline stage turning inputs into outputs.

    ``process`` returning ``None`` drops the item.
    """

    @abstractmethod
    async def process(self, input: I) -> Optional[O]:
        """Transform one input item."""

    def run(self, context: Context) -> "asyncio.Task[Any]":
        """Process every input of the context until its input closes."""

        async def drive() -> None:
            try:
                async for item in context._inputs():
                    result = await self.process(item)
                    if result is not None:
                        await context.output(result)
            finally:
                context._finish()

        return _spawn(drive())

    def concurrent(self, concurrency: int) -> "ConcurrentPipeline":
        """Run this stage in several workers fed round-robin."""
        from .collection import ConcurrentPipeline

        return ConcurrentPipeline(concurrency, self)

    def batch(self, batch_size: int, window: Any) -> "BatchPipeline":
        """Process inputs in batches gathered within a time window."""
        from .collection import BatchPipeline

        return BatchPipeline(batch_size, window, self)