from pydantic import Field
from typing import Optional

from app.models.task import CamelModel, TaskState, TaskType


class GenerateRequest(CamelModel):
    type: TaskType
    prompt: str = Field(..., min_length=1)


class GenerateResponse(CamelModel):
    task_id: str


class VideoTaskCreated(CamelModel):
    success: bool = True
    task_id: str
    status: TaskState
    message: str


class VideoTaskStatus(CamelModel):
    task_id: str
    status: TaskState
    progress: int
    video_url: Optional[str] = None
    error: Optional[str] = None
