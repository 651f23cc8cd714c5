import asyncio
import time
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.main import create_app
from app.models.task import TaskType


class FakeRunwayClient:
    """Stands in for RunwayClient; returns canned URLs without network access."""

    def __init__(self, hold: bool = False, fail: Optional[str] = None):
        self.hold = hold
        self.fail = fail
        self.calls: List[tuple] = []

    async def _maybe_block(self):
        if self.hold:
            await asyncio.sleep(3600)
        if self.fail:
            raise UpstreamError(self.fail)

    async def generate(self, task_type: TaskType, prompt: str, width: int, height: int,
                       duration: Optional[int] = None) -> str:
        self.calls.append(("generate", task_type, prompt, width, height))
        await self._maybe_block()
        return f"https://cdn.example.com/{task_type.value}/result"

    async def create_image_to_video(self, prompt_image: str, prompt_text: str,
                                    ratio: str, duration: int) -> str:
        self.calls.append(("image_to_video", prompt_image, prompt_text, ratio, duration))
        return "upstream-1"

    async def wait_for_output(self, upstream_id: str, poll_interval: float = 5.0,
                              timeout: float = 600.0, on_progress=None) -> str:
        if on_progress:
            on_progress(0.5)
        await self._maybe_block()
        return "https://cdn.example.com/video/upstream-1.mp4"


def make_settings(**overrides) -> Settings:
    values = dict(
        RUNWAY_API_KEY="test-key",
        MAX_CONCURRENT_TASKS=5,
        RATE_LIMIT=100,
        CLEANUP_INTERVAL_SECONDS=3600,
    )
    values.update(overrides)
    return Settings(**values)


def wait_for_status(client: TestClient, path: str, task_id: str, statuses=("completed", "failed"),
                    timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(path, params={"taskId": task_id}).json()
        if body.get("status") in statuses:
            return body
        assert time.monotonic() < deadline, f"task {task_id} stuck in {body.get('status')}"
        time.sleep(0.01)


@pytest.fixture()
def runway() -> FakeRunwayClient:
    return FakeRunwayClient()


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def app(settings: Settings, runway: FakeRunwayClient):
    return create_app(settings, runway_client=runway)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
