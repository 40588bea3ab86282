# elbow

Small asyncio pipelines made of stages. Each stage takes items from a
channel, works on them and passes its results on to the next stage. Items
can be mapped, filtered, observed, grouped into chunks and flattened again.
A stage can also collect its items into batches over a time window, or be
spread over several concurrent workers.

The package has no dependencies outside the standard library.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `elbow.core`: `Channel` (an unbounded asynchronous channel),
  `ChannelClosed`, `Context` (the input and output channels of one running
  stage) and `Pipe`, the base class of every stage.
- `elbow.collection`: `ConcurrentPipeline` and `BatchPipeline`.
- `elbow.builder`: `PipelineBuilder`, the ready-made stages `PipelineMap`,
  `PipelineFilter`, `PipelineTee`, `PipelineChunk` and `PipelineJoin`, and the
  two ends of a built pipeline, `PipelineInput` and `PipelineOutput`.

## Writing a stage

Subclass `elbow.core.Pipe` and write `process`. It is a coroutine that returns
the output for one input, or `None` to drop the input.

```python
from elbow.core import Pipe

class Double(Pipe):
    async def process(self, input):
        return input * 2
```

`Pipe.run(context)` starts a task that calls `process` for every item of the
context's input until that input is closed and empty, then releases its
output so the next stage can finish in turn.

## Building a pipeline

```python
import asyncio
from elbow.builder import PipelineBuilder

async def main():
    results, source = (
        PipelineBuilder.first(Double())
        .filter(lambda x: x > 5)
        .tee(print)
        .map(lambda x: x + 1)
        .chunk(1.0, 3)      # lists of up to 3 items, or whatever came in 1 second
        .join()             # back to single items
        .build()
    )

    for i in range(10):
        await source.send(i)
    source.close()

    async for item in results:
        print("got", item)

asyncio.run(main())
```

Each builder method returns a new builder with one more stage:

- `then(pipe)` appends any `Pipe`.
- `map(fn)` applies `fn` to each item; a `None` result drops the item.
- `filter(fn)` keeps the items for which `fn` is true.
- `tee(fn)` calls `fn` with each item and passes the item on unchanged.
- `chunk(window, size)` groups items into lists of up to `size`, waiting at
  most `window` after the first item of a list.
- `join()` flattens incoming lists into single items.

Windows are given in seconds or as a `datetime.timedelta`.

`build()` must be called while an event loop is running; it starts every
stage and returns two ends:

- a `PipelineInput`, from which the finished items are read with `next()`
  (which returns `None` once the pipeline has finished) or with `async for`;
- a `PipelineOutput`, into which items are fed with `send()`. `close()` ends
  the feed and lets the pipeline run dry; sending after closing raises
  `ChannelClosed`. `handle(items)` feeds an iterable and
  `handle_stream(stream)` an async or ordinary iterable in a background task,
  and both close the end when done.

## Batches and concurrent workers

Every `Pipe` has two helpers:

- `pipe.batch(batch_size, window)` returns a `BatchPipeline` that collects up
  to `batch_size` items, waiting at most `window` after the first one, then
  runs `process` on all of them at once and emits the results in batch order.
- `pipe.concurrent(concurrency)` returns a `ConcurrentPipeline` that runs
  `concurrency` copies of the stage and hands incoming items to them in turn.
  A `concurrency` below 1 raises `ValueError`. Copies are made with the
  stage's `clone()` method when it has one, otherwise with `copy.copy`.

```python
builder.then(SlowLookup().batch(10, 0.1).concurrent(4))
```

Items leaving concurrent stages need not be in the order they came in.

## What it does not do

This is a library only: there is no command-line program. Channels are
unbounded, so a fast feeder is not slowed down by a slow stage, and there is
no error handling between stages: if a stage's `process` raises, that stage's
task ends and closes its output.