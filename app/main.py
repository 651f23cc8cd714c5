from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from app.api import api_router
from app.core.config import Settings, settings as default_settings
from app.utils.logger import setup_logger
from app.services.rate_limiter import RateLimiter
from app.services.runway_client import RunwayClient
from app.services.task_service import cleanup_expired_tasks
from app.services.task_store import TaskStore
from app.services.task_worker import TaskWorker

logger = setup_logger(default_settings.LOG_LEVEL)

def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "; ".join(messages) or "Invalid request"

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                        headers=getattr(exc, "headers", None))

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

def create_app(settings: Optional[Settings] = None, runway_client: Optional[RunwayClient] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 启动时执行
        client = runway_client or RunwayClient.from_settings(settings)
        app.state.runway_client = client
        worker = TaskWorker(app.state.task_store, settings.MAX_CONCURRENT_TASKS)
        await worker.start()
        app.state.worker = worker
        cleanup_task = asyncio.create_task(cleanup_expired_tasks(
            app.state.task_store, app.state.rate_limiter, settings.CLEANUP_INTERVAL_SECONDS
        ))
        if not settings.RUNWAY_API_KEY:
            logger.warning("RUNWAY_API_KEY is not configured; generation requests will fail")
        logger.info(f"{settings.APP_NAME} started")

        yield  # 这里是应用程序运行的地方

        # 关闭时执行
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
        await worker.stop()
        if runway_client is None:
            await client.aclose()
        logger.info(f"{settings.APP_NAME} shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.APP_DESCRIPTION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.task_store = TaskStore(
        completed_ttl=timedelta(seconds=settings.COMPLETED_TASK_TTL_SECONDS),
        failed_ttl=timedelta(seconds=settings.FAILED_TASK_TTL_SECONDS),
    )
    app.state.rate_limiter = RateLimiter(settings.RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(api_router)
    return app

app = create_app()
