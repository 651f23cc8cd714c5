from fastapi import Depends, Request

from app.core.config import Settings
from app.services.rate_limiter import RateLimiter
from app.services.runway_client import RunwayClient
from app.services.task_service import check_rate_limit
from app.services.task_store import TaskStore
from app.services.task_worker import TaskWorker


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.task_store


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_worker(request: Request) -> TaskWorker:
    return request.app.state.worker


def get_runway_client(request: Request) -> RunwayClient:
    return request.app.state.runway_client


def client_key(request: Request) -> str:
    """限流使用的客户端标识：X-Forwarded-For 的第一个地址，否则取连接地址"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request, rate_limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    check_rate_limit(rate_limiter, client_key(request))
