from datetime import datetime, timedelta

import pytest

from app.core.errors import CapacityError, InvalidTransitionError
from app.models.task import TaskState, TaskType
from app.services.task_store import TaskStore

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> TaskStore:
    return TaskStore(completed_ttl=timedelta(hours=1), failed_ttl=timedelta(minutes=15), clock=clock)


def test_create_returns_pending_task_with_unique_id(store: TaskStore) -> None:
    ids = {store.create(TaskType.VIDEO).id for _ in range(50)}
    assert len(ids) == 50
    task = store.get(next(iter(ids)))
    assert task.status == TaskState.PENDING
    assert task.progress == 0
    assert task.result is None and task.error is None


def test_capacity_is_checked_atomically(store: TaskStore) -> None:
    for _ in range(3):
        store.create(TaskType.IMAGE, max_active=3)

    with pytest.raises(CapacityError):
        store.create(TaskType.IMAGE, max_active=3)
    assert store.count_active() == 3
    assert len(store) == 3


def test_terminal_tasks_free_capacity(store: TaskStore) -> None:
    task = store.create(TaskType.IMAGE, max_active=1)
    store.mark_processing(task.id)
    store.mark_completed(task.id, "https://cdn.example.com/a.png")

    assert store.create(TaskType.IMAGE, max_active=1).status == TaskState.PENDING


def test_lifecycle_to_completed(store: TaskStore, clock: FakeClock) -> None:
    task = store.create(TaskType.VIDEO)
    assert store.mark_processing(task.id).status == TaskState.PROCESSING

    done = store.mark_completed(task.id, "https://cdn.example.com/v.mp4")
    assert done.status == TaskState.COMPLETED
    assert done.progress == 100
    assert done.result == "https://cdn.example.com/v.mp4"
    assert done.expires_at == clock.now + timedelta(hours=1)


def test_rejects_invalid_transitions(store: TaskStore) -> None:
    task = store.create(TaskType.IMAGE)
    with pytest.raises(InvalidTransitionError):
        store.mark_completed(task.id, "https://cdn.example.com/a.png")

    store.mark_processing(task.id)
    store.mark_failed(task.id, "boom")
    with pytest.raises(InvalidTransitionError):
        store.mark_processing(task.id)
    with pytest.raises(InvalidTransitionError):
        store.mark_completed(task.id, "https://cdn.example.com/a.png")
    assert store.get(task.id).status == TaskState.FAILED


def test_unknown_task_transition_raises_key_error(store: TaskStore) -> None:
    with pytest.raises(KeyError):
        store.mark_processing("missing")


def test_failed_task_expires_after_fifteen_minutes(store: TaskStore, clock: FakeClock) -> None:
    task = store.create(TaskType.IMAGE)
    store.mark_processing(task.id)
    store.mark_failed(task.id, "Runway API error")

    clock.now += timedelta(minutes=14)
    assert store.get(task.id) is not None

    clock.now += timedelta(minutes=1)
    assert store.get(task.id) is None
    assert len(store) == 0


def test_cleanup_expired_keeps_active_and_fresh_tasks(store: TaskStore, clock: FakeClock) -> None:
    active = store.create(TaskType.IMAGE)
    done = store.create(TaskType.IMAGE)
    store.mark_processing(done.id)
    store.mark_completed(done.id, "https://cdn.example.com/a.png")

    assert store.cleanup_expired() == []
    clock.now += timedelta(hours=2)
    assert store.cleanup_expired() == [done.id]
    assert store.get(active.id) is not None


def test_progress_only_moves_forward_while_processing(store: TaskStore) -> None:
    task = store.create(TaskType.VIDEO)
    store.set_progress(task.id, 40)
    assert store.get(task.id).progress == 0

    store.mark_processing(task.id)
    store.set_progress(task.id, 40)
    store.set_progress(task.id, 20)
    assert store.get(task.id).progress == 40


def test_returned_tasks_are_copies(store: TaskStore) -> None:
    task = store.create(TaskType.IMAGE)
    task.status = TaskState.COMPLETED
    assert store.get(task.id).status == TaskState.PENDING
