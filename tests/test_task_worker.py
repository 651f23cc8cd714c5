import asyncio

import pytest

from app.core.errors import UpstreamError
from app.models.task import TaskState, TaskType
from app.services.task_store import TaskStore
from app.services.task_worker import SHUTDOWN_MESSAGE, TaskWorker, process_task

pytestmark = pytest.mark.unit


def test_process_task_completes_and_observes_processing() -> None:
    store = TaskStore()
    task = store.create(TaskType.IMAGE)
    seen = []

    async def job(task_id: str) -> str:
        seen.append(store.get(task_id).status)
        return "https://cdn.example.com/a.png"

    asyncio.run(process_task(store, task.id, job))

    done = store.get(task.id)
    assert seen == [TaskState.PROCESSING]
    assert done.status == TaskState.COMPLETED
    assert done.progress == 100
    assert done.result == "https://cdn.example.com/a.png"
    assert done.expires_at is not None


def test_process_task_captures_upstream_error() -> None:
    store = TaskStore()
    task = store.create(TaskType.VIDEO)

    async def job(task_id: str) -> str:
        raise UpstreamError("No video URL returned from Runway API")

    asyncio.run(process_task(store, task.id, job))

    failed = store.get(task.id)
    assert failed.status == TaskState.FAILED
    assert failed.error == "No video URL returned from Runway API"
    assert failed.result is None


def test_worker_runs_at_most_concurrency_jobs() -> None:
    store = TaskStore()
    in_flight = 0
    peak = 0

    async def job(task_id: str) -> str:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return f"https://cdn.example.com/{task_id}.png"

    async def scenario():
        worker = TaskWorker(store, concurrency=2)
        await worker.start()
        ids = [store.create(TaskType.IMAGE).id for _ in range(5)]
        for task_id in ids:
            worker.submit(task_id, job)
        await worker.join()
        await worker.stop()
        return ids

    ids = asyncio.run(scenario())
    assert peak == 2
    assert all(store.get(task_id).status == TaskState.COMPLETED for task_id in ids)


def test_stop_fails_running_and_queued_tasks() -> None:
    store = TaskStore()

    async def scenario():
        worker = TaskWorker(store, concurrency=1)
        await worker.start()
        started = asyncio.Event()

        async def slow(task_id: str) -> str:
            started.set()
            await asyncio.sleep(3600)
            return "never"

        running = store.create(TaskType.VIDEO)
        queued = store.create(TaskType.VIDEO)
        worker.submit(running.id, slow)
        worker.submit(queued.id, slow)
        await asyncio.wait_for(started.wait(), timeout=1)
        await worker.stop()
        return running.id, queued.id

    running_id, queued_id = asyncio.run(scenario())
    for task_id in (running_id, queued_id):
        task = store.get(task_id)
        assert task.status == TaskState.FAILED
        assert task.error == SHUTDOWN_MESSAGE


def test_submit_requires_running_worker() -> None:
    worker = TaskWorker(TaskStore())
    with pytest.raises(RuntimeError):
        worker.submit("task", None)
