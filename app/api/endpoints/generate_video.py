from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import Optional

from app.api.deps import (
    enforce_rate_limit, get_runway_client, get_settings, get_task_store, get_worker,
)
from app.core.config import Settings
from app.models.generation import VideoTaskCreated, VideoTaskStatus
from app.services.runway_client import RunwayClient
from app.services.task_service import create_video_task, get_task
from app.services.task_store import TaskStore
from app.services.task_worker import TaskWorker

router = APIRouter()

@router.post("/generate-video", response_model=VideoTaskCreated, dependencies=[Depends(enforce_rate_limit)])
async def start_video_generation(
    image: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    store: TaskStore = Depends(get_task_store),
    worker: TaskWorker = Depends(get_worker),
    client: RunwayClient = Depends(get_runway_client),
):
    """上传图片和提示词，开始图生视频任务"""
    task = await create_video_task(image, prompt, settings, store, worker, client)
    return VideoTaskCreated(
        task_id=task.id,
        status=task.status,
        message="Video generation started. Poll this endpoint with the task ID for the result.",
    )

@router.get("/generate-video", response_model=VideoTaskStatus)
async def get_video_status(taskId: Optional[str] = None, store: TaskStore = Depends(get_task_store)):
    """获取图生视频任务状态"""
    task = get_task(store, taskId)
    return VideoTaskStatus(
        task_id=task.id,
        status=task.status,
        progress=task.progress,
        video_url=task.result,
        error=task.error,
    )
