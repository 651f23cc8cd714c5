from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime


class TaskType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class TaskState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATES = (TaskState.PENDING, TaskState.PROCESSING)
TERMINAL_STATES = (TaskState.COMPLETED, TaskState.FAILED)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(CamelModel):
    id: str
    type: TaskType
    status: TaskState = TaskState.PENDING
    progress: int = 0
    result: Optional[str] = None
    error: Optional[str] = None
    upstream_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES
