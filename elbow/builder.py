"""Fluent construction of linear pipelines and the endpoints that feed and drain them."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterable, Iterable
from datetime import timedelta
from typing import Any, Callable, List, Optional, Tuple, Union

from .collection import _seconds
from .core import Channel, ChannelClosed, Context, Pipe, _spawn


class PipelineMap(Pipe):
    """Applies a function to each item; a ``None`` result drops the item."""

    def __init__(self, map_fn: Callable[[Any], Optional[Any]]) -> None:
        self.map_fn = map_fn

    async def process(self, input: Any) -> Optional[Any]:
        """Return the mapped item, or ``None`` to drop it."""
        return self.map_fn(input)


class PipelineFilter(Pipe):
    """Passes on only the items the predicate accepts."""

    def __init__(self, filter_fn: Callable[[Any], bool]) -> None:
        self.filter_fn = filter_fn

    async def process(self, input: Any) -> Optional[Any]:
        """Return the item if it passes the predicate, otherwise ``None``."""
        return input if self.filter_fn(input) else None


class PipelineTee(Pipe):
    """Calls a function with each item and passes the item on unchanged."""

    def __init__(self, tee_fn: Callable[[Any], Any]) -> None:
        self.tee_fn = tee_fn

    async def process(self, input: Any) -> Optional[Any]:
        """Observe the item and return it."""
        self.tee_fn(input)
        return input


class PipelineChunk(Pipe):
    """Groups items into lists of up to ``chunk_size`` gathered within a window."""

    def __init__(self, window_duration: Union[float, int, timedelta], chunk_size: int) -> None:
        self.window_duration = _seconds(window_duration)
        self.chunk_size = chunk_size

    async def process(self, input: Any) -> Optional[Any]:
        """Single items produce nothing; chunking happens in :meth:`run`."""
        return None

    def run(self, context: Context) -> "asyncio.Task[Any]":
        """Collect chunks from the context's input and emit each as a list."""

        async def collect() -> None:
            loop = asyncio.get_running_loop()
            try:
                while True:
                    try:
                        first = await context.input()
                    except ChannelClosed:
                        break
                    chunk = [first]
                    deadline = loop.time() + self.window_duration
                    while len(chunk) < self.chunk_size:
                        remaining = deadline - loop.time()
                        if remaining <= 0:
                            break
                        try:
                            chunk.append(await asyncio.wait_for(context.input(), remaining))
                        except (asyncio.TimeoutError, ChannelClosed):
                            break
                    await context.output(chunk)
            finally:
                context._finish()

        return _spawn(collect())


class PipelineJoin(Pipe):
    """Flattens incoming lists, emitting their items one by one."""

    async def process(self, input: Any) -> Optional[Any]:
        """Whole lists produce nothing; flattening happens in :meth:`run`."""
        return None

    def run(self, context: Context) -> "asyncio.Task[Any]":
        """Emit every item of every list received."""

        async def flatten() -> None:
            try:
                async for batch in context._inputs():
                    for item in batch:
                        await context.output(item)
            finally:
                context._finish()

        return _spawn(flatten())


class PipelineInput:
    """The receiving end of a built pipeline: yields its final outputs."""

    def __init__(self, channel: Channel[Any]) -> None:
        self._channel = channel

    async def next(self) -> Optional[Any]:
        """Return the next output, or ``None`` once the pipeline has finished."""
        try:
            return await self._channel.recv()
        except ChannelClosed:
            return None

    def __aiter__(self) -> "PipelineInput":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self._channel.recv()
        except ChannelClosed:
            raise StopAsyncIteration from None


class PipelineOutput:
    """The sending end of a built pipeline: feeds items into its first stage.

    Closing it lets the pipeline drain and finish.
    """

    def __init__(self, channel: Channel[Any]) -> None:
        self._channel = channel.acquire()
        self._closed = False

    async def send(self, data: Any) -> None:
        """Send one item into the pipeline; raises ChannelClosed once closed."""
        if self._closed:
            raise ChannelClosed("pipeline output is closed")
        self._channel.send(data)

    def close(self) -> None:
        """Stop sending; safe to call more than once."""
        if not self._closed:
            self._closed = True
            self._channel.release()

    async def _send_reporting(self, item: Any) -> None:
        try:
            await self.send(item)
        except ChannelClosed as exc:
            print(f"failed to send item: {exc}", file=sys.stderr)

    def handle(self, data: Iterable[Any]) -> "asyncio.Task[Any]":
        """Send every item of ``data`` in the background, then close."""
        items = list(data)

        async def feed() -> None:
            try:
                for item in items:
                    await self._send_reporting(item)
            finally:
                self.close()

        return _spawn(feed())

    def handle_stream(self, stream: Union[AsyncIterable[Any], Iterable[Any]]) -> "asyncio.Task[Any]":
        """Send every item of a (possibly asynchronous) stream in the background, then close."""

        async def feed() -> None:
            try:
                if isinstance(stream, AsyncIterable):
                    async for item in stream:
                        await self._send_reporting(item)
                else:
                    for item in stream:
                        await self._send_reporting(item)
            finally:
                self.close()

        return _spawn(feed())


class PipelineBuilder:
    """Builds a linear chain of pipes; each step returns a new builder."""

    def __init__(self, pipe: Pipe) -> None:
        self._pipes: List[Pipe] = [pipe]

    @classmethod
    def first(cls, pipe: Pipe) -> "PipelineBuilder":
        """Start a pipeline with ``pipe`` as its first stage."""
        return cls(pipe)

    def _extend(self, pipe: Pipe) -> "PipelineBuilder":
        builder = type(self).__new__(type(self))
        builder._pipes = [*self._pipes, pipe]
        return builder

    def then(self, pipe: Pipe) -> "PipelineBuilder":
        """Append a stage."""
        return self._extend(pipe)

    def map(self, map_fn: Callable[[Any], Optional[Any]]) -> "PipelineBuilder":
        """Append a mapping stage; ``None`` results are dropped."""
        return self._extend(PipelineMap(map_fn))

    def filter(self, filter_fn: Callable[[Any], bool]) -> "PipelineBuilder":
        """Append a filtering stage."""
        return self._extend(PipelineFilter(filter_fn))

    def tee(self, tee_fn: Callable[[Any], Any]) -> "PipelineBuilder":
        """Append a stage that observes each item."""
        return self._extend(PipelineTee(tee_fn))

    def chunk(self, window_duration: Union[float, int, timedelta], chunk_size: int) -> "PipelineBuilder":
        """Append a stage grouping items into lists."""
        return self._extend(PipelineChunk(window_duration, chunk_size))

    def join(self) -> "PipelineBuilder":
        """Append a stage flattening lists back into items."""
        return self._extend(PipelineJoin())

    def build(self) -> Tuple[PipelineInput, PipelineOutput]:
        """Start every stage and return the pipeline's (results, feed) ends.

        Must be called while an event loop is running.
        """
        channels: List[Channel[Any]] = [Channel() for _ in range(len(self._pipes) + 1)]
        for pipe, inbound, outbound in zip(self._pipes, channels, channels[1:]):
            pipe.run(Context(inbound, outbound))
        return PipelineInput(channels[-1]), PipelineOutput(channels[0])