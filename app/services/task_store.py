import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from app.core.errors import CapacityError, InvalidTransitionError
from app.models.task import ACTIVE_STATES, Task, TaskState, TaskType
from app.utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# 允许的状态迁移
_TRANSITIONS = {
    TaskState.PENDING: (TaskState.PROCESSING,),
    TaskState.PROCESSING: (TaskState.COMPLETED, TaskState.FAILED),
    TaskState.COMPLETED: (),
    TaskState.FAILED: (),
}


class TaskStore:
    """
    进程内的任务存储。

    读取时检查过期时间，过期的任务对外不可见；cleanup_expired() 负责真正删除。
    返回的 Task 都是副本，修改只能通过 store 的方法完成。
    """

    def __init__(self, completed_ttl: timedelta = timedelta(hours=1),
                 failed_ttl: timedelta = timedelta(minutes=15),
                 clock: Callable[[], datetime] = datetime.now):
        self.completed_ttl = completed_ttl
        self.failed_ttl = failed_ttl
        self._clock = clock
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def create(self, task_type: TaskType, max_active: Optional[int] = None) -> Task:
        """创建 pending 任务；max_active 给定时，检查并发数与写入在同一把锁内完成"""
        with self._lock:
            if max_active is not None and self._count_active() >= max_active:
                raise CapacityError("Maximum number of concurrent tasks reached. Please try again later.")

            task_id = str(uuid.uuid4())
            while task_id in self._tasks:
                task_id = str(uuid.uuid4())

            task = Task(id=task_id, type=task_type, created_at=self._clock())
            self._tasks[task_id] = task
            return task.model_copy()

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._live(task_id)
            return task.model_copy() if task else None

    def count_active(self) -> int:
        with self._lock:
            return self._count_active()

    def mark_processing(self, task_id: str) -> Task:
        return self._transition(task_id, TaskState.PROCESSING)

    def mark_completed(self, task_id: str, result: str) -> Task:
        return self._transition(task_id, TaskState.COMPLETED, result=result, progress=100)

    def mark_failed(self, task_id: str, error: str) -> Task:
        return self._transition(task_id, TaskState.FAILED, error=error)

    def set_progress(self, task_id: str, progress: int) -> None:
        """更新进度，只增不减，且只对处理中的任务生效"""
        progress = max(0, min(100, int(progress)))
        with self._lock:
            task = self._live(task_id)
            if task and task.status == TaskState.PROCESSING and progress > task.progress:
                task.progress = progress

    def set_upstream_id(self, task_id: str, upstream_id: str) -> None:
        with self._lock:
            task = self._live(task_id)
            if task:
                task.upstream_id = upstream_id

    def cleanup_expired(self) -> List[str]:
        """删除所有已过期的任务，返回被删除的任务ID"""
        with self._lock:
            now = self._clock()
            expired = [task_id for task_id, task in self._tasks.items() if self._expired(task, now)]
            for task_id in expired:
                del self._tasks[task_id]
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _transition(self, task_id: str, status: TaskState, **fields) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise KeyError(task_id)
            if status not in _TRANSITIONS[task.status]:
                raise InvalidTransitionError(
                    f"Task {task_id} cannot move from {task.status.value} to {status.value}"
                )

            task.status = status
            for name, value in fields.items():
                setattr(task, name, value)

            if status == TaskState.COMPLETED:
                task.expires_at = self._clock() + self.completed_ttl
            elif status == TaskState.FAILED:
                task.expires_at = self._clock() + self.failed_ttl
            return task.model_copy()

    def _live(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if self._expired(task, self._clock()):
            del self._tasks[task_id]
            logger.info(f"Task {task_id} expired")
            return None
        return task

    def _count_active(self) -> int:
        return sum(1 for task in self._tasks.values() if task.status in ACTIVE_STATES)

    @staticmethod
    def _expired(task: Task, now: datetime) -> bool:
        return task.expires_at is not None and now >= task.expires_at
