import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.models.task import TaskType
from app.utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# Runway 任务状态
UPSTREAM_SUCCEEDED = "SUCCEEDED"
UPSTREAM_FAILED_STATES = ("FAILED", "CANCELLED")

ProgressCallback = Callable[[float], None]


def extract_output_url(payload: Dict[str, Any], task_type: Optional[TaskType] = None) -> Optional[str]:
    """
    从 Runway 响应中取出结果URL。

    output 可能是 {"image": url} / {"video": url}，也可能是URL列表。
    """
    output = payload.get("output")
    if isinstance(output, dict):
        keys = [task_type.value] if task_type else ["video", "image"]
        for key in keys:
            url = output.get(key)
            if isinstance(url, str) and url:
                return url
        return None
    if isinstance(output, list) and output:
        first = output[0]
        if isinstance(first, str) and first:
            return first
    return None


class RunwayClient:
    """Runway API 客户端，每个方法只发一次请求，不做重试"""

    def __init__(self, api_key: str, base_url: str, api_version: str, model: str,
                 timeout_sec: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Runway-Version": api_version,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_sec, connect=min(timeout_sec, 10.0)),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunwayClient":
        return cls(
            api_key=settings.RUNWAY_API_KEY or "",
            base_url=settings.RUNWAY_API_BASE,
            api_version=settings.RUNWAY_API_VERSION,
            model=settings.RUNWAY_MODEL,
            timeout_sec=settings.UPSTREAM_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Runway API request failed: {e}") from e

        if response.is_error:
            raise UpstreamError(
                f"Runway API error: {response.status_code} {response.reason_phrase}. {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("Runway API returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise UpstreamError("Runway API returned an unexpected response")
        return payload

    async def generate(self, task_type: TaskType, prompt: str, width: int, height: int,
                       duration: Optional[int] = None) -> str:
        """文本生成图片/视频，返回结果URL"""
        inputs: Dict[str, Any] = {"prompt": prompt, "width": width, "height": height}
        if task_type == TaskType.VIDEO and duration:
            inputs["duration"] = duration
        path = "/inference" if task_type == TaskType.IMAGE else "/image_to_video"

        payload = await self._request("POST", path, json={"model": self.model, "inputs": inputs})
        url = extract_output_url(payload, task_type)
        if not url:
            raise UpstreamError(f"No {task_type.value} URL returned from Runway API")
        return url

    async def create_image_to_video(self, prompt_image: str, prompt_text: str,
                                    ratio: str, duration: int) -> str:
        """提交图生视频任务，返回 Runway 任务ID"""
        payload = await self._request("POST", "/image_to_video", json={
            "model": self.model,
            "promptImage": prompt_image,
            "promptText": prompt_text,
            "duration": duration,
            "ratio": ratio,
            "watermark": False,
        })
        upstream_id = payload.get("id")
        if not upstream_id:
            raise UpstreamError("No task id returned from Runway API")
        return str(upstream_id)

    async def get_task(self, upstream_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/tasks/{upstream_id}")

    async def wait_for_output(self, upstream_id: str, poll_interval: float = 5.0,
                              timeout: float = 600.0,
                              on_progress: Optional[ProgressCallback] = None) -> str:
        """轮询 Runway 任务直到结束，返回第一个输出URL"""
        deadline = time.monotonic() + timeout
        while True:
            payload = await self.get_task(upstream_id)
            status = str(payload.get("status") or "").upper()

            if status == UPSTREAM_SUCCEEDED:
                url = extract_output_url(payload)
                if not url:
                    raise UpstreamError("No video URL found in completed task")
                return url

            if status in UPSTREAM_FAILED_STATES:
                reason = payload.get("failure") or payload.get("failureCode") or status.lower()
                raise UpstreamError(f"Runway task {upstream_id} failed: {reason}")

            progress = payload.get("progress")
            if on_progress and isinstance(progress, (int, float)):
                on_progress(float(progress))

            if time.monotonic() >= deadline:
                raise UpstreamError(f"Runway task {upstream_id} did not finish within {timeout:.0f}s")
            logger.debug(f"Runway task {upstream_id} status: {status or 'unknown'}")
            await asyncio.sleep(poll_interval)
