"""Tests for the shared call scheduler (pipedrive_mcp/throttle.py)."""

import asyncio

import pytest

from pipedrive_mcp.errors import RemoteCallTimeout
from pipedrive_mcp.throttle import Scheduler

SLACK = 0.005   # event loop clock resolution


class Probe:
    """Async remote-call stand-in that records start/end times and concurrency."""

    def __init__(self, duration=0.0):
        self.duration = duration
        self.starts = []
        self.ends = []
        self.order = []
        self.running = 0
        self.peak = 0

    async def __call__(self, tag=None):
        loop = asyncio.get_running_loop()
        self.starts.append(loop.time())
        self.order.append(tag)
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            await asyncio.sleep(self.duration)
            return tag
        finally:
            self.running -= 1
            self.ends.append(loop.time())


async def test_spacing_between_consecutive_starts():
    scheduler = Scheduler(min_time_ms=40, max_concurrent=5)
    probe = Probe()
    await asyncio.gather(*(scheduler.schedule(probe, i) for i in range(5)))
    gaps = [b - a for a, b in zip(probe.starts, probe.starts[1:])]
    assert len(gaps) == 4
    assert all(g >= 0.040 - SLACK for g in gaps)


async def test_concurrency_never_exceeds_cap():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=2)
    probe = Probe(duration=0.02)
    await asyncio.gather(*(scheduler.schedule(probe, i) for i in range(8)))
    assert probe.peak == 2
    assert scheduler.in_flight == 0
    assert scheduler.dispatched == 8


async def test_single_slot_serializes_calls():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1)
    probe = Probe(duration=0.03)
    await asyncio.gather(scheduler.schedule(probe, "a"), scheduler.schedule(probe, "b"))
    assert probe.starts[1] >= probe.ends[0]


async def test_dispatch_is_fifo():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1)
    probe = Probe(duration=0.001)
    results = await asyncio.gather(*(scheduler.schedule(probe, i) for i in range(6)))
    assert probe.order == list(range(6))
    assert results == list(range(6))


async def test_errors_pass_through_unchanged_and_free_the_slot():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1)

    class Boom(Exception):
        pass

    async def failing():
        raise Boom("remote said no")

    with pytest.raises(Boom, match="remote said no"):
        await scheduler.schedule(failing)
    assert scheduler.in_flight == 0
    assert await scheduler.schedule(Probe(), "after") == "after"


async def test_timeout_cancels_call_and_frees_slot():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1, timeout_s=0.05)
    hung = Probe(duration=5)
    with pytest.raises(RemoteCallTimeout):
        await scheduler.schedule(hung)
    assert scheduler.in_flight == 0
    assert await asyncio.wait_for(scheduler.schedule(Probe(), "next"), 1) == "next"


async def test_call_raising_timeout_error_is_not_reported_as_deadline():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1, timeout_s=5)

    async def remote():
        raise TimeoutError("upstream lock wait")

    with pytest.raises(TimeoutError, match="upstream lock wait") as info:
        await scheduler.schedule(remote)
    assert not isinstance(info.value, RemoteCallTimeout)
    assert scheduler.in_flight == 0


async def test_spacing_also_holds_with_one_slot():
    scheduler = Scheduler(min_time_ms=30, max_concurrent=1)
    probe = Probe()
    for i in range(3):
        await scheduler.schedule(probe, i)
    gaps = [b - a for a, b in zip(probe.starts, probe.starts[1:])]
    assert all(g >= 0.030 - SLACK for g in gaps)


async def test_cancelled_waiter_does_not_leak_a_slot():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1)
    slow = Probe(duration=0.05)
    first = asyncio.create_task(scheduler.schedule(slow, 1))
    await asyncio.sleep(0)
    waiting = asyncio.create_task(scheduler.schedule(slow, 2))
    await asyncio.sleep(0)
    assert scheduler.pending == 1
    waiting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiting
    assert await first == 1
    assert scheduler.in_flight == 0
    assert slow.order == [1]


async def test_wrap_keeps_name_and_semantics():
    scheduler = Scheduler(min_time_ms=0, max_concurrent=1)

    async def get_deal(deal_id, *, full=False):
        return {"id": deal_id, "full": full}

    throttled = scheduler.wrap(get_deal)
    assert throttled.__name__ == "get_deal"
    assert await throttled(7, full=True) == {"id": 7, "full": True}
    assert scheduler.dispatched == 1


def test_rejects_bad_configuration():
    with pytest.raises(ValueError):
        Scheduler(max_concurrent=0)
    with pytest.raises(ValueError):
        Scheduler(min_time_ms=-1)
