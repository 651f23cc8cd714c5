from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # 应用配置
    APP_NAME: str = "Runway Generation API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "A FastAPI service for image and video generation using Runway"
    LOG_LEVEL: str = "INFO"

    # Runway 上游配置
    RUNWAY_API_KEY: Optional[str] = None
    RUNWAY_API_BASE: str = "https://api.dev.runwayml.com/v1"
    RUNWAY_API_VERSION: str = "2024-11-06"
    RUNWAY_MODEL: str = "gen4_turbo"
    UPSTREAM_TIMEOUT_SECONDS: float = 60.0
    UPSTREAM_POLL_INTERVAL_SECONDS: float = 5.0
    UPSTREAM_WAIT_TIMEOUT_SECONDS: float = 600.0

    # 输出配置
    OUTPUT_WIDTH: int = 1280
    OUTPUT_HEIGHT: int = 720
    VIDEO_DURATION_SECONDS: int = 5

    # 任务配置
    MAX_CONCURRENT_TASKS: int = 5  # 最大并发任务数
    MAX_PROMPT_LENGTH: int = 1000
    MAX_IMAGE_SIZE: int = 5 * 1024 * 1024  # 5MB
    COMPLETED_TASK_TTL_SECONDS: int = 3600  # 完成的任务保留1小时
    FAILED_TASK_TTL_SECONDS: int = 900  # 失败的任务保留15分钟
    CLEANUP_INTERVAL_SECONDS: int = 60

    # 限流配置
    RATE_LIMIT: int = 10
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    @property
    def output_ratio(self) -> str:
        return f"{self.OUTPUT_WIDTH}:{self.OUTPUT_HEIGHT}"

    class Config:
        env_file = ".env"

# 创建全局设置实例
settings = Settings()
