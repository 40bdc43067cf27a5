"""
Unit tests for ephemeral_secrets/util.py.
"""

import asyncio
import time

from ephemeral_secrets.util import ID_ALPHABET, TaskTracker, delayed, new_id, now_millis


def test_new_id():
    ids = {new_id() for _ in range(1000)}
    assert len(ids) == 1000
    for value in ids:
        assert len(value) == 26
        assert set(value) <= set(ID_ALPHABET)


def test_now_millis():
    before = int(time.time() * 1000)
    value = now_millis()
    assert before - 1 <= value <= int(time.time() * 1000) + 1


async def test_task_tracker_join():
    tracker = TaskTracker()
    results = []

    async def work(value):
        await asyncio.sleep(0)
        results.append(value)

    tracker.spawn(work(1), name="one")
    tracker.spawn(work(2), name="two")
    assert len(tracker) == 2
    await tracker.join()
    assert sorted(results) == [1, 2]
    assert len(tracker) == 0


async def test_task_tracker_failure_is_contained():
    tracker = TaskTracker()

    async def boom():
        raise RuntimeError("boom")

    tracker.spawn(boom(), name="boom")
    await tracker.join()
    assert len(tracker) == 0


async def test_task_tracker_shutdown():
    tracker = TaskTracker()
    started = asyncio.Event()

    async def forever():
        started.set()
        await asyncio.sleep(3600)

    task = tracker.spawn(forever(), name="forever")
    await started.wait()
    await tracker.shutdown()
    assert task.cancelled()

    async def late():
        return None

    assert tracker.spawn(late(), name="late") is None


async def test_task_tracker_adopt():
    tracker = TaskTracker()
    task = asyncio.ensure_future(asyncio.sleep(0))
    tracker.adopt(task)
    assert len(tracker) == 1
    await tracker.join()
    assert task.done()


async def test_delayed():
    calls = []

    async def func():
        calls.append(True)
        return "done"

    assert await delayed(0, func) == "done"
    assert await delayed(0.01, func) == "done"
    assert len(calls) == 2
