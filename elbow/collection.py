"""Stages that fan work out to concurrent workers or process it in batches."""

from __future__ import annotations

import asyncio
import copy
from datetime import timedelta
from typing import Any, List, Optional, Union

from .core import Channel, ChannelClosed, Context, Pipe, _spawn


def _clone(pipe: Pipe) -> Pipe:
    clone = getattr(pipe, "clone", None)
    return clone() if callable(clone) else copy.copy(pipe)


def _seconds(window: Union[float, int, timedelta]) -> float:
    if isinstance(window, timedelta):
        return window.total_seconds()
    return float(window)


class ConcurrentPipeline(Pipe):
    """Distributes inputs round-robin over copies of a pipe, one per worker."""

    def __init__(self, concurrency: int, pipe: Pipe) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.pipe = pipe
        self._next = 0
        self._channels: List[Channel[Any]] = [Channel() for _ in range(concurrency)]

    async def process(self, input: Any) -> Optional[Any]:
        """Hand the item to the next worker; produces no direct output."""
        channel = self._channels[self._next % self.concurrency]
        self._next += 1
        try:
            channel.send(input)
        except ChannelClosed:
            pass
        return None

    def run(self, context: Context) -> "asyncio.Task[Any]":
        """Start the workers and dispatch the context's inputs to them."""
        for channel in self._channels:
            channel.acquire()
            _clone(self.pipe).run(Context(channel, context.output_stream))

        async def dispatch() -> None:
            try:
                async for item in context._inputs():
                    await self.process(item)
            finally:
                for channel in self._channels:
                    channel.release()
                context._finish()

        return _spawn(dispatch())

    def clone(self) -> "ConcurrentPipeline":
        """A fresh pipeline with the same concurrency and a copy of the pipe."""
        return ConcurrentPipeline(self.concurrency, _clone(self.pipe))


class BatchPipeline(Pipe):
    """Gathers up to ``batch_size`` inputs within ``window`` seconds and
    processes each batch concurrently, keeping its order."""

    def __init__(self, batch_size: int, window: Union[float, int, timedelta], pipe: Pipe) -> None:
        self.batch_size = batch_size
        self.window = _seconds(window)
        self.pipe = pipe

    async def process(self, input: Any) -> Optional[Any]:
        """Process a single item with the wrapped pipe."""
        return await self.pipe.process(input)

    def run(self, context: Context) -> "asyncio.Task[Any]":
        """Collect batches from the context's input and emit their results."""

        async def collect() -> None:
            loop = asyncio.get_running_loop()
            try:
                while True:
                    try:
                        first = await context.input()
                    except ChannelClosed:
                        break
                    batch = [first]
                    deadline = loop.time() + self.window
                    while len(batch) < self.batch_size:
                        remaining = deadline - loop.time()
                        if remaining <= 0:
                            break
                        try:
                            batch.append(await asyncio.wait_for(context.input(), remaining))
                        except (asyncio.TimeoutError, ChannelClosed):
                            break
                    results = await asyncio.gather(*(self.pipe.process(item) for item in batch))
                    for result in results:
                        if result is not None:
                            await context.output(result)
            finally:
                context._finish()

        return _spawn(collect())

    def clone(self) -> "BatchPipeline":
        """A batch pipeline with the same settings and a copy of the pipe."""
        return BatchPipeline(self.batch_size, self.window, _clone(self.pipe))