import asyncio

import pytest

from api.services.inproc_queue import GenerationQueue


def test_runs_tasks_one_at_a_time_in_submission_order():
    queue = GenerationQueue()
    events = []

    async def job(index):
        events.append(("start", index))
        await asyncio.sleep(0.01)
        events.append(("end", index))
        return index

    async def scenario():
        return await asyncio.gather(*(queue.submit(lambda i=i: job(i)) for i in range(3)))

    assert asyncio.run(scenario()) == [0, 1, 2]
    assert events == [
        ("start", 0), ("end", 0),
        ("start", 1), ("end", 1),
        ("start", 2), ("end", 2),
    ]
    assert queue.pending == 0


def test_failing_task_does_not_block_later_ones():
    queue = GenerationQueue()

    async def boom():
        await asyncio.sleep(0)
        raise ValueError("bad payload")

    async def fine():
        return "ok"

    async def scenario():
        return await asyncio.gather(queue.submit(boom), queue.submit(fine), return_exceptions=True)

    failed, succeeded = asyncio.run(scenario())
    assert isinstance(failed, ValueError)
    assert succeeded == "ok"
    assert queue.pending == 0


def test_caller_receives_its_own_exception():
    queue = GenerationQueue()

    async def boom():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        asyncio.run(queue.submit(boom))
