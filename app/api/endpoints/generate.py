from fastapi import APIRouter, Depends
from typing import Optional

from app.api.deps import (
    enforce_rate_limit, get_runway_client, get_settings, get_task_store, get_worker,
)
from app.core.config import Settings
from app.models.generation import GenerateRequest, GenerateResponse
from app.models.task import Task
from app.services.runway_client import RunwayClient
from app.services.task_service import create_task, get_task
from app.services.task_store import TaskStore
from app.services.task_worker import TaskWorker

router = APIRouter()

@router.post("/generate", response_model=GenerateResponse, dependencies=[Depends(enforce_rate_limit)])
async def start_generation(
    request: GenerateRequest,
    settings: Settings = Depends(get_settings),
    store: TaskStore = Depends(get_task_store),
    worker: TaskWorker = Depends(get_worker),
    client: RunwayClient = Depends(get_runway_client),
):
    """提交文本生成任务"""
    task = create_task(request, settings, store, worker, client)
    return GenerateResponse(task_id=task.id)

@router.get("/generate", response_model=Task)
async def get_generation_status(taskId: Optional[str] = None, store: TaskStore = Depends(get_task_store)):
    """获取任务状态"""
    return get_task(store, taskId)
