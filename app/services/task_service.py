import asyncio
import base64
import logging
from typing import Optional
from fastapi import UploadFile

from app.core.config import Settings
from app.core.errors import (
    CapacityError, ConfigurationError, InvalidRequestError, PayloadTooLargeError, TaskNotFoundError,
)
from app.models.generation import GenerateRequest
from app.models.task import Task, TaskType
from app.services.generation_service import image_to_video_job, text_generation_job
from app.services.rate_limiter import RateLimiter
from app.services.runway_client import RunwayClient
from app.services.task_store import TaskStore
from app.services.task_worker import TaskWorker
from app.utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

async def cleanup_expired_tasks(store: TaskStore, rate_limiter: Optional[RateLimiter] = None,
                                interval: float = 60):
    """定期清理过期的任务和限流记录"""
    while True:
        for task_id in store.cleanup_expired():
            logger.info(f"Cleaned up expired task {task_id}")
        if rate_limiter is not None:
            rate_limiter.cleanup()

        await asyncio.sleep(interval)

def check_rate_limit(rate_limiter: RateLimiter, client_key: str) -> None:
    result = rate_limiter.check(client_key)
    if not result.success:
        logger.warning(f"Rate limit exceeded for {client_key}")
        raise CapacityError("Too many requests. Please try again later.")

def ensure_configured(settings: Settings) -> None:
    if not settings.RUNWAY_API_KEY:
        logger.error("RUNWAY_API_KEY is not configured")
        raise ConfigurationError("RUNWAY_API_KEY is not configured")

def validate_prompt(prompt: Optional[str], max_length: int) -> str:
    if not prompt:
        raise InvalidRequestError("Prompt is required")
    if len(prompt) > max_length:
        raise InvalidRequestError(f"Prompt must be less than {max_length} characters")
    return prompt

def submit_job(store: TaskStore, worker: TaskWorker, task_id: str, job) -> None:
    """提交到后台执行；提交失败时把任务标记为失败，避免一直占用并发名额"""
    try:
        worker.submit(task_id, job)
    except Exception as e:
        logger.error(f"Failed to submit task {task_id}: {str(e)}", exc_info=True)
        store.mark_processing(task_id)
        store.mark_failed(task_id, str(e) or "Failed to start task")
        raise

def create_task(request: GenerateRequest, settings: Settings, store: TaskStore,
                worker: TaskWorker, client: RunwayClient) -> Task:
    """创建新的文本生成任务，立即返回，生成在后台进行"""
    prompt = validate_prompt(request.prompt, settings.MAX_PROMPT_LENGTH)
    ensure_configured(settings)

    task = store.create(request.type, max_active=settings.MAX_CONCURRENT_TASKS)
    logger.info(f"Created {task.type.value} task {task.id}")

    submit_job(store, worker, task.id, text_generation_job(client, settings, request.type, prompt))
    return task

async def read_image_as_data_uri(image: UploadFile, max_size: int) -> str:
    """读取上传的图片并编码为 data URI，不落盘"""
    if not image.content_type or not image.content_type.startswith("image/"):
        raise InvalidRequestError("Invalid file type. Please upload an image.")

    size = 0
    chunk_size = 1024 * 1024  # 1MB
    chunks = []

    while True:
        chunk = await image.read(chunk_size)
        if not chunk:
            break
        size += len(chunk)
        chunks.append(chunk)

        if size > max_size:
            raise PayloadTooLargeError(
                f"Image too large. Maximum size is {max_size / (1024 * 1024):g}MB"
            )

    if size == 0:
        raise InvalidRequestError("Image file is empty")

    encoded = base64.b64encode(b"".join(chunks)).decode("ascii")
    return f"data:{image.content_type};base64,{encoded}"

async def create_video_task(image: Optional[UploadFile], prompt: Optional[str], settings: Settings,
                            store: TaskStore, worker: TaskWorker, client: RunwayClient) -> Task:
    """创建图生视频任务"""
    if image is None or not prompt:
        raise InvalidRequestError("Image and prompt are required.")
    prompt = validate_prompt(prompt, settings.MAX_PROMPT_LENGTH)
    prompt_image = await read_image_as_data_uri(image, settings.MAX_IMAGE_SIZE)
    ensure_configured(settings)

    task = store.create(TaskType.VIDEO, max_active=settings.MAX_CONCURRENT_TASKS)
    logger.info(f"Image uploaded: {image.filename}, task ID: {task.id}")

    submit_job(store, worker, task.id, image_to_video_job(client, store, settings, prompt_image, prompt))
    return task

def get_task(store: TaskStore, task_id: Optional[str]) -> Task:
    """获取任务状态"""
    if not task_id:
        raise InvalidRequestError("Task ID is required")
    task = store.get(task_id)
    if task is None:
        raise TaskNotFoundError()
    return task
