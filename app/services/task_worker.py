import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from app.models.task import TaskState
from app.services.task_store import TaskStore
from app.utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# job 接收任务ID，返回结果URL；失败时直接抛异常
Job = Callable[[str], Awaitable[str]]

SHUTDOWN_MESSAGE = "Service shutting down"


@dataclass
class QueuedJob:
    task_id: str
    job: Job


class TaskWorker:
    """
    后台任务执行器：一个队列加固定数量的 worker 协程。

    submit() 不阻塞；任务在 worker 中执行，异常写入任务记录而不是抛给调用方。
    """

    def __init__(self, store: TaskStore, concurrency: int = 5):
        self.store = store
        self.concurrency = max(1, concurrency)
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []

    async def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._run(), name=f"task-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"Task worker started with {self.concurrency} workers")

    def submit(self, task_id: str, job: Job) -> None:
        if self._queue is None:
            raise RuntimeError("Task worker is not running")
        self._queue.put_nowait(QueuedJob(task_id, job))

    async def join(self) -> None:
        """等待队列中所有任务执行完毕"""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """取消正在执行的任务，并把队列中剩余的任务标记为失败"""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self._queue is not None:
            while not self._queue.empty():
                queued = self._queue.get_nowait()
                self._fail(queued.task_id, SHUTDOWN_MESSAGE)
            self._queue = None
        logger.info("Task worker stopped")

    async def _run(self) -> None:
        while True:
            queued = await self._queue.get()
            try:
                await process_task(self.store, queued.task_id, queued.job)
            finally:
                self._queue.task_done()

    def _fail(self, task_id: str, message: str) -> None:
        task = self.store.get(task_id)
        if task is None or task.is_terminal:
            return
        if task.status == TaskState.PENDING:
            self.store.mark_processing(task_id)
        self.store.mark_failed(task_id, message)


async def process_task(store: TaskStore, task_id: str, job: Job) -> None:
    """执行单个任务并维护其状态"""
    task = store.get(task_id)
    if task is None:
        logger.warning(f"Task {task_id} disappeared before processing")
        return

    store.mark_processing(task_id)
    logger.info(f"Processing {task.type.value} task {task_id}")

    try:
        result = await job(task_id)
    except asyncio.CancelledError:
        store.mark_failed(task_id, SHUTDOWN_MESSAGE)
        logger.info(f"Task {task_id} cancelled")
        raise
    except Exception as e:
        logger.error(f"Error processing task {task_id}: {str(e)}", exc_info=True)
        store.mark_failed(task_id, str(e) or "Unknown error")
        return

    store.mark_completed(task_id, result)
    logger.info(f"Task {task_id} completed successfully")
