import asyncio

import pytest

from ea_sync.orchestrator.fetch_queue import FetchQueue


class RecordingSleep:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.mark.asyncio
async def test_requests_run_in_fifo_order_one_at_a_time():
    queue = FetchQueue(interval_s=0)
    started, running = [], []

    def request(n):
        async def fn():
            started.append(n)
            running.append(n)
            assert len(running) == 1
            await asyncio.sleep(0)
            running.remove(n)
            return n * 10
        return fn

    results = await asyncio.gather(*(queue.enqueue(request(n)) for n in range(5)))

    assert started == [0, 1, 2, 3, 4]
    assert results == [0, 10, 20, 30, 40]
    assert queue.processed == 5
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_a_failure_only_rejects_its_own_caller():
    queue = FetchQueue(interval_s=0)

    async def ok():
        return "ok"

    async def boom():
        raise RuntimeError("upstream 500")

    results = await asyncio.gather(
        queue.enqueue(ok), queue.enqueue(boom), queue.enqueue(ok),
        return_exceptions=True,
    )

    assert results[0] == "ok"
    assert isinstance(results[1], RuntimeError)
    assert results[2] == "ok"
    assert queue.failed == 1
    assert queue.processed == 2


@pytest.mark.asyncio
async def test_hung_request_times_out_and_queue_moves_on():
    queue = FetchQueue(interval_s=0, timeout_s=0.05)

    async def hang():
        await asyncio.sleep(10)

    async def ok():
        return 1

    results = await asyncio.gather(queue.enqueue(hang), queue.enqueue(ok), return_exceptions=True)

    assert isinstance(results[0], asyncio.TimeoutError)
    assert results[1] == 1
    assert queue.timed_out == 1


@pytest.mark.asyncio
async def test_minimum_interval_between_starts():
    sleep = RecordingSleep()
    now = [100.0]
    queue = FetchQueue(interval_s=1.0, clock=lambda: now[0], sleep=sleep)

    async def fn():
        now[0] += 0.25
        return True

    await asyncio.gather(*(queue.enqueue(fn) for _ in range(3)))

    assert sleep.waits == [pytest.approx(0.75), pytest.approx(0.75)]


@pytest.mark.asyncio
async def test_enqueue_while_draining_only_appends():
    queue = FetchQueue(interval_s=0)
    gate = asyncio.Event()

    async def slow():
        await gate.wait()
        return "slow"

    async def fast():
        return "fast"

    first = asyncio.ensure_future(queue.enqueue(slow))
    await asyncio.sleep(0)
    drain_task = queue._drain_task
    second = asyncio.ensure_future(queue.enqueue(fast))
    await asyncio.sleep(0)

    assert queue._drain_task is drain_task
    assert queue.pending == 1

    gate.set()
    assert await first == "slow"
    assert await second == "fast"
