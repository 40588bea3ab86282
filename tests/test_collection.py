import asyncio
from datetime import timedelta

import pytest

from elbow.collection import BatchPipeline, ConcurrentPipeline
from elbow.core import Channel, ChannelClosed, Context, Pipe


class Doubler(Pipe):
    async def process(self, input):
        return input * 2


class EvenOnly(Pipe):
    async def process(self, input):
        return input if input % 2 == 0 else None


class Tracker:
    def __init__(self):
        self.active = 0
        self.peak = 0


class Slow(Pipe):
    def __init__(self, tracker, delay=0.02):
        self.tracker = tracker
        self.delay = delay

    async def process(self, input):
        self.tracker.active += 1
        self.tracker.peak = max(self.tracker.peak, self.tracker.active)
        await asyncio.sleep(self.delay)
        self.tracker.active -= 1
        return input


async def drain(channel):
    items = []
    while True:
        try:
            items.append(await asyncio.wait_for(channel.recv(), 2))
        except ChannelClosed:
            return items


def start(pipe, items, close=True):
    inp, out = Channel(), Channel()
    inp.acquire()
    for item in items:
        inp.send(item)
    pipe.run(Context(inp, out))
    if close:
        inp.release()
    return inp, out


def test_zero_concurrency_is_rejected():
    with pytest.raises(ValueError):
        ConcurrentPipeline(0, Doubler())


@pytest.mark.asyncio
async def test_concurrent_process_has_no_direct_output():
    pipeline = ConcurrentPipeline(2, Doubler())
    assert await pipeline.process(1) is None


@pytest.mark.asyncio
async def test_concurrent_run_processes_every_item():
    _, out = start(ConcurrentPipeline(3, Doubler()), range(10))
    results = await drain(out)
    assert sorted(results) == [item * 2 for item in range(10)]


@pytest.mark.asyncio
async def test_concurrent_run_uses_all_workers():
    tracker = Tracker()
    _, out = start(ConcurrentPipeline(4, Slow(tracker)), range(8))
    results = await drain(out)
    assert sorted(results) == list(range(8))
    assert tracker.peak == 4


@pytest.mark.asyncio
async def test_concurrent_run_drops_none_results():
    _, out = start(ConcurrentPipeline(2, EvenOnly()), range(6))
    assert sorted(await drain(out)) == [0, 2, 4]


def test_concurrent_clone_copies_pipe():
    pipe = Doubler()
    original = ConcurrentPipeline(3, pipe)
    clone = original.clone()
    assert clone.concurrency == original.concurrency
    assert clone.pipe is not pipe and isinstance(clone.pipe, Doubler)


def test_concurrent_clone_uses_inner_clone():
    inner = BatchPipeline(4, 0.5, Doubler())
    clone = ConcurrentPipeline(2, inner).clone()
    assert isinstance(clone.pipe, BatchPipeline)
    assert clone.pipe.batch_size == 4
    assert clone.pipe is not inner


@pytest.mark.asyncio
async def test_batch_process_delegates():
    assert await BatchPipeline(2, 0.1, Doubler()).process(4) == 8


def test_batch_accepts_timedelta_window():
    assert BatchPipeline(2, timedelta(milliseconds=250), Doubler()).window == 0.25


def test_batch_clone_keeps_settings():
    original = BatchPipeline(3, 0.5, Doubler())
    clone = original.clone()
    assert (clone.batch_size, clone.window) == (3, 0.5)
    assert clone.pipe is not original.pipe


@pytest.mark.asyncio
async def test_batch_processes_batch_concurrently_in_order():
    tracker = Tracker()
    _, out = start(BatchPipeline(3, 1.0, Slow(tracker)), ["a", "b", "c"])
    assert await drain(out) == ["a", "b", "c"]
    assert tracker.peak == 3


@pytest.mark.asyncio
async def test_batch_size_zero_processes_one_at_a_time():
    tracker = Tracker()
    _, out = start(BatchPipeline(0, 1.0, Slow(tracker)), [1, 2, 3])
    assert await drain(out) == [1, 2, 3]
    assert tracker.peak == 1


@pytest.mark.asyncio
async def test_batch_emits_partial_batch_after_window():
    inp, out = start(BatchPipeline(10, 0.05, Doubler()), [1], close=False)
    assert await asyncio.wait_for(out.recv(), 1) == 2
    inp.release()
    assert await drain(out) == []


@pytest.mark.asyncio
async def test_batch_drops_none_results():
    _, out = start(BatchPipeline(4, 0.05, EvenOnly()), range(8))
    assert await drain(out) == [0, 2, 4, 6]


@pytest.mark.asyncio
async def test_batch_inside_concurrent_handles_everything():
    pipeline = Doubler().batch(5, 0.05).concurrent(3)
    _, out = start(pipeline, range(20))
    assert sorted(await drain(out)) == [item * 2 for item in range(20)]