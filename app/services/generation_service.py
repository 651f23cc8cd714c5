import logging

from app.core.config import Settings
from app.models.task import TaskType
from app.services.runway_client import RunwayClient
from app.services.task_store import TaskStore
from app.services.task_worker import Job
from app.utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def text_generation_job(client: RunwayClient, settings: Settings,
                        task_type: TaskType, prompt: str) -> Job:
    """文本生成：一次上游调用，直接拿到结果URL"""
    async def job(task_id: str) -> str:
        logger.info(f"Task {task_id}: requesting {task_type.value} from Runway")
        return await client.generate(
            task_type,
            prompt,
            width=settings.OUTPUT_WIDTH,
            height=settings.OUTPUT_HEIGHT,
            duration=settings.VIDEO_DURATION_SECONDS,
        )
    return job


def image_to_video_job(client: RunwayClient, store: TaskStore, settings: Settings,
                       prompt_image: str, prompt_text: str) -> Job:
    """图生视频：提交 Runway 任务后轮询，直到拿到视频URL"""
    async def job(task_id: str) -> str:
        upstream_id = await client.create_image_to_video(
            prompt_image,
            prompt_text,
            ratio=settings.output_ratio,
            duration=settings.VIDEO_DURATION_SECONDS,
        )
        store.set_upstream_id(task_id, upstream_id)
        logger.info(f"Task {task_id}: Runway task {upstream_id} created")

        def on_progress(fraction: float) -> None:
            # 100 只由 mark_completed 设置
            store.set_progress(task_id, min(99, round(fraction * 100)))

        return await client.wait_for_output(
            upstream_id,
            poll_interval=settings.UPSTREAM_POLL_INTERVAL_SECONDS,
            timeout=settings.UPSTREAM_WAIT_TIMEOUT_SECONDS,
            on_progress=on_progress,
        )
    return job
