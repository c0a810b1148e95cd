from __future__ import annotations

import asyncio

import pytest

from companion_client.audio.task_queue import AudioTaskQueue


@pytest.mark.asyncio
async def test_tasks_run_one_at_a_time_in_order() -> None:
    queue = AudioTaskQueue()
    events: list[str] = []
    active = 0
    peak = 0

    def make(name: str):
        async def _task() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            events.append(f"start:{name}")
            await asyncio.sleep(0.01)
            events.append(f"end:{name}")
            active -= 1

        return _task

    for name in ("a", "b", "c"):
        queue.add_task(make(name))
    assert queue.has_task()
    await asyncio.wait_for(queue.join(), 1)

    assert peak == 1
    assert events == ["start:a", "end:a", "start:b", "end:b", "start:c", "end:c"]
    assert not queue.has_task()


@pytest.mark.asyncio
async def test_clear_queue_keeps_running_task() -> None:
    queue = AudioTaskQueue()
    release = asyncio.Event()
    ran: list[str] = []

    async def first() -> None:
        ran.append("first")
        await release.wait()
        ran.append("first-done")

    async def second() -> None:
        ran.append("second")

    queue.add_task(first)
    queue.add_task(second)
    await asyncio.sleep(0)
    queue.clear_queue()
    assert queue.has_task()

    release.set()
    await asyncio.wait_for(queue.join(), 1)
    assert ran == ["first", "first-done"]
    assert not queue.has_task()


@pytest.mark.asyncio
async def test_failing_task_does_not_stall_queue() -> None:
    errors: list[Exception] = []
    queue = AudioTaskQueue(on_error=errors.append)
    ran: list[str] = []

    async def broken() -> None:
        raise RuntimeError("device gone")

    async def healthy() -> None:
        ran.append("healthy")

    queue.add_task(broken)
    queue.add_task(healthy)
    await asyncio.wait_for(queue.join(), 1)

    assert ran == ["healthy"]
    assert len(errors) == 1 and str(errors[0]) == "device gone"


@pytest.mark.asyncio
async def test_close_cancels_worker() -> None:
    queue = AudioTaskQueue()
    started = asyncio.Event()

    async def forever() -> None:
        started.set()
        await asyncio.sleep(10)

    queue.add_task(forever)
    await started.wait()
    await queue.close()
    assert not queue.has_task()
