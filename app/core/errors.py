from fastapi import HTTPException


class InvalidRequestError(HTTPException):
    """请求参数不合法"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class PayloadTooLargeError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=413, detail=detail)


class CapacityError(HTTPException):
    """限流或并发任务数已满"""

    def __init__(self, detail: str):
        super().__init__(status_code=429, detail=detail)


class ConfigurationError(HTTPException):
    """服务端缺少必要配置（例如 RUNWAY_API_KEY）"""

    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)


class TaskNotFoundError(HTTPException):
    def __init__(self, detail: str = "Task not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidTransitionError(RuntimeError):
    """任务状态只能按 pending -> processing -> completed/failed 前进"""


class UpstreamError(RuntimeError):
    """Runway 调用失败或返回了意外的数据结构"""
